from __future__ import annotations

"""Repository interface contracts.

The resolver, executor and corrective loop depend on this Protocol instead of
the concrete JSON store.

Contract guidelines
-------------------

- A repository instance is bound to exactly one mode; there is no way to
  reach another mode's records through it.
- ``put`` is a full overwrite of the record for its name.
- Writes are atomic from the perspective of any reader.
- ``get`` reflects the latest completed write, including writes made by
  other processes.
"""

from typing import Optional, Protocol

from ergo_ai.core.config import Mode

from ..schemas.domain import ArtifactRecord, LastInvocation


class ArtifactRepository(Protocol):
    """Persist generated artifacts for one namespace."""

    @property
    def mode(self) -> Mode:
        """The namespace this repository is bound to."""
        ...

    def get(self, name: str) -> Optional[ArtifactRecord]:
        """
        Retrieve the record for a command name.

        Args:
            name: The command identifier.

        Returns:
            The record if present, else None.
        """
        ...

    def put(self, record: ArtifactRecord) -> None:
        """
        Store a record, replacing any existing record with the same name.

        Args:
            record: The record to persist. Its ``mode`` must match the repository.
        """
        ...

    def invalidate(self, name: str) -> bool:
        """
        Remove the record for a command name.

        Returns:
            True if a record was removed.
        """
        ...

    def list_records(self) -> list[ArtifactRecord]:
        """Return every record in the namespace, ordered by name."""
        ...

    def get_last(self) -> Optional[LastInvocation]:
        """Return the most recently resolved generated command, if any."""
        ...

    def set_last(self, last: LastInvocation) -> None:
        """Remember the most recently resolved generated command."""
        ...
