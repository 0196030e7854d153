"""Calendar-aware study plan workflow."""
from .graph import AgentResult, run_study_plan_agent, study_plan_graph
from .orchestrator import (
    PlanOutcome,
    PlanRequest,
    PlanningInputError,
    StudyPlanOrchestrator,
)
from .state import ChapterAllocation, ConversationStateError, PlanContext, StudyPlanState
from .tools import ToolExecutionError

__all__ = [
    "AgentResult",
    "ChapterAllocation",
    "ConversationStateError",
    "PlanContext",
    "PlanOutcome",
    "PlanRequest",
    "PlanningInputError",
    "StudyPlanOrchestrator",
    "StudyPlanState",
    "ToolExecutionError",
    "run_study_plan_agent",
    "study_plan_graph",
]
