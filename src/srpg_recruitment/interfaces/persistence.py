"""Roster Persistence Protocol Interface.

This module defines the contract for the collaborator that stores finalized
recruitments across stages and chapters.
"""

from typing import Protocol

from srpg_recruitment.domain.models import RosterEntry


class RosterSink(Protocol):
    """Receives recruitments that became permanent at stage clear."""

    def append(self, entries: list[RosterEntry]) -> None:
        """Store newly recruited characters.

        Args:
            entries: Roster records produced by a stage completion
        """
        ...
