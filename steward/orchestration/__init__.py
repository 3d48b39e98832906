"""
Orchestration Package

Turns one natural-language request into a bounded sequence of tool calls:
- Analyze-and-plan against the language model
- Read-only batching and single dispatch of mutating calls
- Per-iteration evaluation
- Closing synthesis through the registry
"""

from .orchestrator import Orchestrator
from .planner import Planner, PlanOutcome
from .state import PlannedStep

__all__ = ["Orchestrator", "PlanOutcome", "PlannedStep", "Planner"]
