"""Domain model for the recruitment engine.

This package hosts everything the engine reasons about without side effects:

* Dataclasses for units, contexts, NPC records and definitions (see :mod:`models`).
* Enumerations shared across the engine.
* The condition variants and their evaluation (see :mod:`conditions`).
* Rule configuration objects (see :mod:`rules_config`).
* The event channel used for notifications (see :mod:`events`).
"""

from . import conditions, enums, events, models, rules_config

__all__ = [
    "conditions",
    "enums",
    "events",
    "models",
    "rules_config",
]
