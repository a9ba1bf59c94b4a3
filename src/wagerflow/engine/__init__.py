"""Wager lifecycle engine: admission, placement, settlement and cycle orchestration."""

from wagerflow.engine.admission import CycleAdmissionController, ProviderGate
from wagerflow.engine.cycle import CycleReport, CycleRunner, Engine, build_engine
from wagerflow.engine.placement import CriticalAbort, PlaceBatchResult, PlacementStateMachine
from wagerflow.engine.settlement import SettlementPoller, SettlementResult

__all__ = [
    "CriticalAbort",
    "CycleAdmissionController",
    "CycleReport",
    "CycleRunner",
    "Engine",
    "PlaceBatchResult",
    "PlacementStateMachine",
    "ProviderGate",
    "SettlementPoller",
    "SettlementResult",
    "build_engine",
]
