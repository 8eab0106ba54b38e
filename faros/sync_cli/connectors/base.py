"""Abstract base class for external connector runners."""

from abc import ABC, abstractmethod

from faros.sync_cli.models.config import Configuration


class ExternalSyncRunner(ABC):
    """Runs a sync through an external, containerized connector."""

    @abstractmethod
    async def run_external_sync(self, config: Configuration) -> int:
        """Run the sync to completion.

        Args:
            config: Resolved configuration

        Returns:
            Exit code of the connector run (0 on success)

        """
