"""Protocol-based interfaces for the recruitment engine's collaborators.

The engine never reaches into the battle, persistence or tuning layers
directly; each collaborator is injected through one of these protocols.
"""

from srpg_recruitment.interfaces.battle import BattleContextProvider
from srpg_recruitment.interfaces.optimization import OptimizationHooks
from srpg_recruitment.interfaces.persistence import RosterSink

__all__ = [
    "BattleContextProvider",
    "OptimizationHooks",
    "RosterSink",
]
