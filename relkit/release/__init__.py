"""Release bounded context.

- state / store: the persisted release record and its durable storage
- graph: dependency tiers for publishing
- publish: tiered publish pipeline with retries
- rollback: undo of completed phases
- machine: the phase state machine tying everything together
- contracts: collaborator protocols (workspace, version, git, registry)
"""

from __future__ import annotations

from .contracts import CancelToken
from .errors import ReleaseError
from .graph import DependencyGraph, TierPlan, build_graph, publish_order
from .machine import ReleaseStateMachine, RollbackOutcome
from .publish import PublishPipeline, PublishReport, PublishSettings, RollbackReport
from .rollback import RollbackCoordinator, RollbackScope, RollbackSummary
from .state import Phase, ReleaseConfig, ReleaseState
from .store import LoadedState, StateStore

__all__ = [
    "CancelToken",
    "DependencyGraph",
    "LoadedState",
    "Phase",
    "PublishPipeline",
    "PublishReport",
    "PublishSettings",
    "ReleaseConfig",
    "ReleaseError",
    "ReleaseState",
    "ReleaseStateMachine",
    "RollbackCoordinator",
    "RollbackOutcome",
    "RollbackReport",
    "RollbackScope",
    "RollbackSummary",
    "StateStore",
    "TierPlan",
    "build_graph",
    "publish_order",
]
