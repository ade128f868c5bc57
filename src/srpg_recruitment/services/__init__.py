"""Service layer for the recruitment engine.

Services are stage-scoped and wired through constructor injection:

- Services depend on Protocol interfaces (BattleContextProvider, RosterSink,
  OptimizationHooks)
- Use factory.py for production dependency wiring
- Inject protocol-based fakes for testing (avoid complex mocking)

Architecture:
    - ConditionCache: memoized condition results guarded by context fingerprints
    - NPCLifecycleManager: NPC records, damage, defeat and AI priority
    - PerformanceMonitor: rolling metrics, alerts and self-tuning
    - RecruitmentOrchestrator: stage initialization, eligibility, attempts
      and completion

Production Usage:
    from srpg_recruitment.factory import create_orchestrator
    engine = create_orchestrator(context_provider=battle)
    engine.initialize(stage)

Testing Usage:
    from srpg_recruitment.services.recruitment_service import RecruitmentOrchestrator

    class FakeBattle:
        def allied_units(self):
            return []
        ...

    engine = RecruitmentOrchestrator(context_provider=FakeBattle())
"""

from srpg_recruitment.services.condition_cache import ConditionCache
from srpg_recruitment.services.npc_service import NPCLifecycleManager
from srpg_recruitment.services.performance_monitor import PerformanceMonitor
from srpg_recruitment.services.recruitment_service import RecruitmentOrchestrator

__all__ = [
    "ConditionCache",
    "NPCLifecycleManager",
    "PerformanceMonitor",
    "RecruitmentOrchestrator",
]
