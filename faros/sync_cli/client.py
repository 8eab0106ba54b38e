"""HTTP client for the Faros events API."""

import asyncio
import logging
import random
from types import TracebackType
from urllib.parse import quote

import aiohttp

from faros.sync_cli.errors import (
    ConfigurationError,
    HTTPError,
    SyncError,
    TransientNetworkError,
)
from faros.sync_cli.models.config import Configuration
from faros.sync_cli.models.event import Event
from faros.sync_cli.version import __version__

REQUEST_TIMEOUT = 60.0
MAX_ATTEMPTS = 3
BACKOFF_BASE = 0.1
RETRYABLE_STATUSES = frozenset({429, 503})
USER_AGENT = f"faros-cli/{__version__}"

_NETWORK_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
)


class EventClient:
    """Sends events to a Faros graph with retries on transient failures.

    Use as an async context manager so the underlying session is closed:

        async with create_client(config, logger) as client:
            await client.send_event("default", event)
    """

    def __init__(
        self,
        config: Configuration,
        logger: logging.Logger,
        *,
        timeout: float = REQUEST_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_base: float = BACKOFF_BASE,
    ) -> None:
        """Initialize client from a resolved configuration."""
        if not config.api_key:
            raise ConfigurationError(
                "Faros API key is required. Set via --api-key or the "
                "FAROS_API_KEY env var (in .env file or environment)"
            )
        self.base_url = config.url.rstrip("/")
        self.headers = {
            "Authorization": config.api_key,
            "User-Agent": USER_AGENT,
        }
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.logger = logger
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "EventClient":
        """Open the HTTP session."""
        self._get_session()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the HTTP session."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if one is open."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers, timeout=self.timeout
            )
        return self._session

    def events_url(self, graph: str) -> str:
        """Return the events endpoint for a graph."""
        return f"{self.base_url}/graphs/{quote(graph, safe='')}/events"

    def backoff_delay(self, attempt: int) -> float:
        """Exponential delay before retrying after the given attempt."""
        delay = self.backoff_base * (2 ** (attempt - 1))
        return delay + delay * 0.2 * random.random()  # noqa: S311

    async def send_event(
        self,
        graph: str,
        event: Event,
        *,
        validate_only: bool = False,
        full: bool = True,
    ) -> None:
        """Post one event, retrying on network errors, 429 and 503.

        Args:
            graph: Target graph name
            event: Event to send; the same payload is used for every attempt
            validate_only: Ask the API to validate without writing
            full: Request full event processing

        Raises:
            HTTPError: On a non-retryable status, or a retryable one that
                persisted through every attempt
            TransientNetworkError: If network failures persisted through
                every attempt

        """
        session = self._get_session()
        url = self.events_url(graph)
        params = {
            "full": "true" if full else "false",
            "validateOnly": "true" if validate_only else "false",
        }
        payload = event.to_payload()

        last_error: SyncError
        last_cause: BaseException | None
        attempt = 0
        while True:
            attempt += 1
            last_cause = None
            try:
                async with session.post(url, json=payload, params=params) as response:
                    if 200 <= response.status < 300:
                        self.logger.debug(
                            f"Sent {event.type} event to graph {graph} "
                            f"(status {response.status}, attempt {attempt})"
                        )
                        return

                    body = await response.text()
                    error = HTTPError(response.status, body)
                    if response.status not in RETRYABLE_STATUSES:
                        raise error
                    last_error = error
            except _NETWORK_ERRORS as e:
                last_error = TransientNetworkError(
                    f"Network error sending event to {url}: {type(e).__name__}: {e}"
                )
                last_cause = e

            if attempt >= self.max_attempts:
                self.logger.error(
                    f"Giving up after {self.max_attempts} attempts: {last_error}"
                )
                raise last_error from last_cause

            delay = self.backoff_delay(attempt)
            self.logger.warning(
                f"Attempt {attempt}/{self.max_attempts} failed: {last_error}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


def create_client(config: Configuration, logger: logging.Logger) -> EventClient:
    """Create an events client.

    Raises:
        ConfigurationError: If the configuration has no API key

    """
    return EventClient(config, logger)
