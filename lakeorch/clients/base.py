"""
Collaborator interfaces consumed by the orchestrator core.

The core never shells out directly. It talks to three collaborators:
- StateQuery: read-only inspection of cluster state (plus the single
  delete used by self-healing)
- ReleaseOperation: idempotent apply of one deployment unit
- DiagnosticFetch: recent output and events for failure classification

Default implementations live in lakeorch.clients.kubectl and
lakeorch.clients.helm. Tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from lakeorch.schemas import ReleaseRecord, ResourceSelector, ResourceState


class StateQuery(ABC):
    """Declarative-state query over the cluster."""

    @abstractmethod
    def query(self, selector: ResourceSelector) -> list[ResourceState]:
        """
        Observe every resource in scope.

        Args:
            selector: The resource scope

        Returns:
            Current state of each matching resource

        Raises:
            QueryError: If the state could not be observed
        """
        pass

    @abstractmethod
    def query_exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        """
        Check whether one named resource exists.

        Raises:
            QueryError: If existence could not be determined
        """
        pass

    @abstractmethod
    def delete_resource(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        """
        Delete one resource so its controller recreates it.

        Returns:
            True if the delete was accepted
        """
        pass


class ReleaseOperation(ABC):
    """Release-manager operations on deployment units."""

    @abstractmethod
    def install_or_upgrade(
        self,
        name: str,
        source: str,
        values: Mapping[str, Any],
        version: Optional[str] = None,
        release_wait: Optional[str] = None,
    ) -> ReleaseRecord:
        """
        Idempotently apply one deployment unit.

        Re-applying an already-current unit is a no-op upgrade, not an error.
        A failed apply is reported through the returned record's status.

        Returns:
            ReleaseRecord with status "deployed" or "failed"

        Raises:
            CommandError: If the release manager could not be executed
        """
        pass

    @abstractmethod
    def get_release(self, name: str) -> Optional[ReleaseRecord]:
        """
        Look up the current state of a release.

        Returns:
            The observed release, or None if it is not installed

        Raises:
            QueryError: If the release list could not be read
        """
        pass


class DiagnosticFetch(ABC):
    """Access to recent diagnostic text."""

    @abstractmethod
    def fetch_recent_output(
        self,
        resource_name: str,
        namespace: str,
        prefer_previous: bool = True,
        tail_lines: int = 200,
    ) -> str:
        """
        Recent output of a resource.

        With prefer_previous, the previous run's terminal output is returned
        when available, falling back to current output.

        Returns:
            Output text ("" when nothing could be fetched)
        """
        pass

    @abstractmethod
    def fetch_recent_events(self, scope: str, tail: int = 25) -> str:
        """
        Recent events in a scope (namespace), oldest first, one per line.

        Raises:
            QueryError: If events could not be read
        """
        pass
