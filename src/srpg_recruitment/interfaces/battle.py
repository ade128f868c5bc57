"""Battle Context Protocol Interface.

This module defines the capability the recruitment engine needs from the
battle system when it builds a condition context on its own.
"""

from typing import Protocol

from srpg_recruitment.domain.models import Unit


class BattleContextProvider(Protocol):
    """Read-only view of the units currently on the battlefield."""

    def allied_units(self) -> list[Unit]:
        """Return the player's units still in play.

        Returns:
            Units fighting on the player side (NPCs excluded)
        """
        ...

    def enemy_units(self) -> list[Unit]:
        """Return the enemy units still in play."""
        ...

    def npc_units(self) -> list[Unit]:
        """Return units currently held in NPC state."""
        ...
