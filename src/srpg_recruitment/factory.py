"""Service Factory for the recruitment engine.

This module provides factory functions for creating engine instances with
proper dependency wiring. Use these functions in production code to ensure
all collaborators share the same rules.

For testing, inject protocol-based fakes instead of using these factories.

Example:
    # Production usage
    from srpg_recruitment.factory import create_orchestrator
    engine = create_orchestrator(context_provider=battle)

    # Testing usage
    from srpg_recruitment.services.recruitment_service import RecruitmentOrchestrator

    class FakeRoster:
        def __init__(self):
            self.entries = []

        def append(self, entries):
            self.entries.extend(entries)

    engine = RecruitmentOrchestrator(roster_sink=FakeRoster())
"""

from __future__ import annotations

from srpg_recruitment.config import Settings, get_settings
from srpg_recruitment.domain.events import EventBus
from srpg_recruitment.domain.rules_config import RulesConfig
from srpg_recruitment.interfaces.battle import BattleContextProvider
from srpg_recruitment.interfaces.persistence import RosterSink
from srpg_recruitment.repository.json_store import JsonRosterRepository
from srpg_recruitment.services.condition_cache import ConditionCache
from srpg_recruitment.services.npc_service import NPCLifecycleManager
from srpg_recruitment.services.recruitment_service import RecruitmentOrchestrator


def create_roster_repository(settings: Settings | None = None) -> JsonRosterRepository:
    """Create the roster repository under the configured data directory.

    Args:
        settings: Settings to use; defaults to the cached process settings

    Returns:
        JsonRosterRepository rooted at ``settings.data_dir``
    """
    settings = settings or get_settings()
    return JsonRosterRepository(settings.data_dir)


def create_orchestrator(
    rules: RulesConfig | None = None,
    *,
    context_provider: BattleContextProvider | None = None,
    roster_sink: RosterSink | None = None,
    settings: Settings | None = None,
) -> RecruitmentOrchestrator:
    """Create a RecruitmentOrchestrator with all dependencies.

    Args:
        rules: Engine rules; derived from ``settings`` when omitted
        context_provider: Battle-side view of the units in play
        roster_sink: Where finalized recruits go; defaults to the JSON roster
        settings: Settings to use; defaults to the cached process settings

    Returns:
        Fully initialized RecruitmentOrchestrator whose persisted roster has
        already been loaded
    """
    settings = settings or get_settings()
    rules = rules or settings.to_rules()
    if roster_sink is None:
        repository = create_roster_repository(settings)
        roster_sink = repository
    else:
        repository = None

    engine = RecruitmentOrchestrator(
        rules,
        bus=EventBus(
            deferred=rules.notifications.deferred,
            history_limit=rules.notifications.history_limit,
        ),
        cache=ConditionCache(rules.cache),
        npc_manager=NPCLifecycleManager(rules.npc),
        context_provider=context_provider,
        roster_sink=roster_sink,
    )
    if repository is not None:
        engine.load_roster(repository.load())
    return engine
