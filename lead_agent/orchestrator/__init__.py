"""Scheduling, suspension and coordination of the automation loop."""

from .coordinator import AgentWorker, Coordinator, SessionStatistics
from .scheduler import CycleScheduler, SchedulerStatistics
from .state import AutomationMode, AutomationState, CyclePhase
from .suspension import SuspensionController, next_local_midnight

__all__ = [
    "AgentWorker",
    "AutomationMode",
    "AutomationState",
    "Coordinator",
    "CyclePhase",
    "CycleScheduler",
    "SchedulerStatistics",
    "SessionStatistics",
    "SuspensionController",
    "next_local_midnight",
]
