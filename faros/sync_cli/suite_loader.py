"""Load and parse test result reports.

JUnit, TestNG and xUnit reports are XML; Cucumber and Mocha reports are the
JSON output of their standard JSON formatters. Every parser yields the same
TestSuite models, so the rest of the sync does not care about the format.
"""

import json
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

from faros.sync_cli.models.test_suite import TestCase, TestResults, TestStep, TestSuite


class TestResultsFormat(str, Enum):
    """Supported report formats."""

    __test__ = False

    CUCUMBER = "cucumber"
    JUNIT = "junit"
    MOCHA = "mocha"
    TESTNG = "testng"
    XUNIT = "xunit"


def _seconds_to_ms(value: str | None) -> float:
    if not value:
        return 0.0
    try:
        return float(value) * 1000
    except ValueError:
        return 0.0


def _millis(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _text(element: ET.Element | None) -> str | None:
    if element is None:
        return None
    return (element.text or "").strip() or None


def _summarize(
    name: str,
    cases: list[TestCase],
    duration: float,
    timestamp: str | None = None,
) -> TestSuite:
    failed = sum(1 for case in cases if case.status == "FAIL")
    skipped = sum(1 for case in cases if case.status == "SKIP")
    return TestSuite(
        name=name,
        status="FAIL" if failed else "PASS",
        total=len(cases),
        passed=len(cases) - failed - skipped,
        failed=failed,
        skipped=skipped,
        duration=duration,
        timestamp=timestamp or None,
        cases=cases,
    )


def _read_xml(report: Path) -> ET.Element:
    if not report.is_file():
        raise FileNotFoundError(f"Test results file not found: {report}")
    try:
        return ET.parse(report).getroot()  # noqa: S314
    except ET.ParseError as e:
        raise ValueError(f"Invalid XML in {report}: {e}") from e


def _read_json(report: Path) -> Any:
    if not report.is_file():
        raise FileNotFoundError(f"Test results file not found: {report}")
    try:
        return json.loads(report.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {report}: {e}") from e


def _unexpected_root(report: Path, kind: str, tag: str) -> ValueError:
    return ValueError(
        f"Invalid {kind} report {report}: unexpected root element <{tag}>"
    )


# JUnit


def _parse_junit_case(element: ET.Element) -> TestCase:
    problem = element.find("failure")
    if problem is None:
        problem = element.find("error")

    if problem is not None:
        return TestCase(
            name=element.get("name", ""),
            status="FAIL",
            duration=_seconds_to_ms(element.get("time")),
            failure=problem.get("message") or problem.get("type"),
            stack_trace=_text(problem),
        )

    status = "SKIP" if element.find("skipped") is not None else "PASS"
    return TestCase(
        name=element.get("name", ""),
        status=status,
        duration=_seconds_to_ms(element.get("time")),
    )


def parse_junit_file(report: Path) -> list[TestSuite]:
    """Parse a JUnit XML report into suites.

    Args:
        report: Path to a JUnit XML file

    Returns:
        Suites in document order

    Raises:
        FileNotFoundError: If the report doesn't exist
        ValueError: If the report is not valid JUnit XML

    """
    root = _read_xml(report)

    if root.tag == "testsuite":
        elements = [root]
    elif root.tag == "testsuites":
        elements = [el for el in root.iter("testsuite") if el.find("testsuite") is None]
    else:
        raise _unexpected_root(report, "JUnit", root.tag)

    return [
        _summarize(
            el.get("name") or report.stem,
            [_parse_junit_case(case) for case in el.findall("testcase")],
            _seconds_to_ms(el.get("time")),
            el.get("timestamp"),
        )
        for el in elements
    ]


# TestNG

_TESTNG_STATUSES = {"PASS": "PASS", "FAIL": "FAIL", "SKIP": "SKIP"}


def _parse_testng_method(element: ET.Element) -> TestCase:
    status = _TESTNG_STATUSES.get(element.get("status", "").upper(), "PASS")
    exception = element.find("exception")
    failure = None
    stack_trace = None
    if exception is not None:
        failure = _text(exception.find("message")) or exception.get("class")
        stack_trace = _text(exception.find("full-stacktrace"))

    return TestCase(
        name=element.get("name", ""),
        status=status,
        duration=_millis(element.get("duration-ms")),
        failure=failure,
        stack_trace=stack_trace,
    )


def parse_testng_file(report: Path) -> list[TestSuite]:
    """Parse a TestNG results XML report.

    Each <test> element becomes one suite. Configuration methods
    (is-config="true") are not test cases and are left out.
    """
    root = _read_xml(report)
    if root.tag != "testng-results":
        raise _unexpected_root(report, "TestNG", root.tag)

    suites = []
    for test in root.iter("test"):
        methods = [
            method
            for method in test.iter("test-method")
            if method.get("is-config", "false").lower() != "true"
        ]
        suites.append(
            _summarize(
                test.get("name") or report.stem,
                [_parse_testng_method(method) for method in methods],
                _millis(test.get("duration-ms")),
                test.get("started-at"),
            )
        )
    return suites


# xUnit.net v2

_XUNIT_STATUSES = {"pass": "PASS", "fail": "FAIL", "skip": "SKIP"}


def _parse_xunit_test(element: ET.Element) -> TestCase:
    status = _XUNIT_STATUSES.get(element.get("result", "").lower(), "PASS")
    failure = None
    stack_trace = None
    problem = element.find("failure")
    if problem is not None:
        failure = _text(problem.find("message")) or problem.get("exception-type")
        stack_trace = _text(problem.find("stack-trace"))
    elif status == "SKIP":
        failure = _text(element.find("reason"))

    return TestCase(
        name=element.get("name", ""),
        status=status,
        duration=_seconds_to_ms(element.get("time")),
        failure=failure,
        stack_trace=stack_trace,
    )


def parse_xunit_file(report: Path) -> list[TestSuite]:
    """Parse an xUnit.net v2 XML report.

    Each test collection becomes one suite, timestamped with its assembly's
    run date and time when both are present.
    """
    root = _read_xml(report)
    if root.tag == "assembly":
        assemblies = [root]
    elif root.tag == "assemblies":
        assemblies = root.findall("assembly")
    else:
        raise _unexpected_root(report, "xUnit", root.tag)

    suites = []
    for assembly in assemblies:
        run_date = assembly.get("run-date")
        run_time = assembly.get("run-time")
        timestamp = f"{run_date}T{run_time}" if run_date and run_time else None
        for collection in assembly.findall("collection"):
            suites.append(
                _summarize(
                    collection.get("name") or assembly.get("name") or report.stem,
                    [_parse_xunit_test(test) for test in collection.findall("test")],
                    _seconds_to_ms(collection.get("time")),
                    timestamp,
                )
            )
    return suites


# Cucumber JSON

_CUCUMBER_SKIPPED = frozenset({"skipped", "pending", "undefined", "ambiguous"})


def _parse_cucumber_step(step: dict[str, Any]) -> TestStep:
    result = step.get("result") or {}
    error = result.get("error_message")
    return TestStep(
        name=f"{step.get('keyword', '')}{step.get('name', '')}".strip(),
        status=result.get("status", "unknown"),
        failure=error.splitlines()[0] if error else None,
        stack_trace=error or None,
    )


def _parse_cucumber_scenario(scenario: dict[str, Any]) -> TestCase:
    raw_steps = [s for s in scenario.get("steps") or [] if not s.get("hidden")]
    steps = [_parse_cucumber_step(step) for step in raw_steps]
    statuses = {step.status.lower() for step in steps}

    failed = next((s for s in steps if s.status.lower() == "failed"), None)
    if failed is not None:
        status = "FAIL"
    elif statuses & _CUCUMBER_SKIPPED:
        status = "SKIP"
    else:
        status = "PASS"

    # Cucumber reports step durations in nanoseconds
    duration = sum(
        _millis((step.get("result") or {}).get("duration")) for step in raw_steps
    )
    return TestCase(
        name=scenario.get("name", ""),
        status=status,
        duration=duration / 1_000_000,
        failure=failed.failure if failed else None,
        stack_trace=failed.stack_trace if failed else None,
        steps=steps,
    )


def parse_cucumber_file(report: Path) -> list[TestSuite]:
    """Parse a Cucumber JSON report.

    Each feature becomes a suite and each scenario a test case whose steps
    are kept. Backgrounds are folded into the scenarios by Cucumber itself,
    so only elements of type "scenario" are read.
    """
    features = _read_json(report)
    if not isinstance(features, list):
        raise ValueError(
            f"Invalid Cucumber report {report}: expected a list of features"
        )

    suites = []
    for feature in features:
        scenarios = [
            _parse_cucumber_scenario(element)
            for element in feature.get("elements") or []
            if element.get("type", "scenario") == "scenario"
        ]
        suites.append(
            _summarize(
                feature.get("name") or feature.get("uri") or report.stem,
                scenarios,
                sum(case.duration for case in scenarios),
            )
        )
    return suites


# Mocha JSON reporter


def _mocha_suite_name(test: dict[str, Any], fallback: str) -> str:
    full_title = test.get("fullTitle") or ""
    title = test.get("title") or ""
    if title and full_title.endswith(title):
        full_title = full_title[: -len(title)]
    return full_title.strip() or fallback


def parse_mocha_file(report: Path) -> list[TestSuite]:
    """Parse the output of Mocha's JSON reporter.

    Tests are grouped into suites by the describe-block prefix of their full
    title, in first-seen order.
    """
    data = _read_json(report)
    if not isinstance(data, dict) or "tests" not in data:
        raise ValueError(f"Invalid Mocha report {report}: missing 'tests'")

    pending = {t.get("fullTitle") for t in data.get("pending") or []}
    grouped: dict[str, list[TestCase]] = {}
    for test in data["tests"]:
        err = test.get("err") or {}
        if err:
            status = "FAIL"
        elif test.get("pending") or test.get("fullTitle") in pending:
            status = "SKIP"
        else:
            status = "PASS"
        case = TestCase(
            name=test.get("title", ""),
            status=status,
            duration=_millis(test.get("duration")),
            failure=err.get("message"),
            stack_trace=err.get("stack"),
        )
        grouped.setdefault(_mocha_suite_name(test, report.stem), []).append(case)

    start = (data.get("stats") or {}).get("start")
    return [
        _summarize(name, cases, sum(case.duration for case in cases), start)
        for name, cases in grouped.items()
    ]


_PARSERS: dict[TestResultsFormat, Callable[[Path], list[TestSuite]]] = {
    TestResultsFormat.CUCUMBER: parse_cucumber_file,
    TestResultsFormat.JUNIT: parse_junit_file,
    TestResultsFormat.MOCHA: parse_mocha_file,
    TestResultsFormat.TESTNG: parse_testng_file,
    TestResultsFormat.XUNIT: parse_xunit_file,
}


def load_test_results(
    reports: Sequence[Path],
    results_format: str = TestResultsFormat.JUNIT.value,
    logger: logging.Logger | None = None,
) -> TestResults:
    """Parse every report into one TestResults collection.

    Raises:
        ValueError: If the format is unsupported or a report is invalid
        FileNotFoundError: If a report doesn't exist

    """
    try:
        parser = _PARSERS[TestResultsFormat(results_format.lower())]
    except ValueError:
        supported = ", ".join(f.value for f in TestResultsFormat)
        raise ValueError(
            f"Unsupported test results format: {results_format}. "
            f"Must be one of: {supported}"
        ) from None

    suites: list[TestSuite] = []
    for report in reports:
        parsed = parser(report)
        if logger:
            logger.debug(f"Parsed {len(parsed)} {results_format} suites from {report}")
        suites.extend(parsed)

    return TestResults(suites=suites)
