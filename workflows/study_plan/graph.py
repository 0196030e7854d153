"""Study plan workflow graph definition."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from langgraph.graph import END, START, StateGraph

from providers.base import TokenUsage, ToolProtocolAdapter
from scheduling.models import ConflictRecord, PlannedSession
from shared.config import Configuration
from .nodes import (
    finalize_study_plan,
    initialize_study_plan,
    route_after_agent,
    route_after_tools,
    run_tools,
    study_plan_agent,
)
from .state import PlanContext, StudyPlanState

_logger = logging.getLogger("planner")


def create_study_plan_workflow() -> StateGraph:
    """Create the study plan workflow graph.

    Flow:
    1. Seed the conversation with the task description
    2. Agent asks the model for its next turn
    3. Tools run the requested calls in order, then the budgets are checked
    4. Loop back to the agent until the model stops calling tools, every
       session is accepted, or the iteration/deadline budget runs out

    Returns:
        Compiled study plan workflow graph
    """
    workflow = StateGraph(StudyPlanState)

    workflow.add_node("initialize", initialize_study_plan)
    workflow.add_node("agent", study_plan_agent)
    workflow.add_node("tools", run_tools)
    workflow.add_node("finalize", finalize_study_plan)

    workflow.add_edge(START, "initialize")
    workflow.add_edge("initialize", "agent")

    workflow.add_conditional_edges(
        "agent",
        route_after_agent,
        {
            "tools": "tools",
            "finalize": "finalize",
        },
    )
    workflow.add_conditional_edges(
        "tools",
        route_after_tools,
        {
            "agent": "agent",
            "finalize": "finalize",
        },
    )

    workflow.add_edge("finalize", END)

    return workflow.compile()


# Export the compiled graph
study_plan_graph = create_study_plan_workflow()


@dataclass
class AgentResult:
    """Outcome of one agent run."""
    sessions: List[PlannedSession]
    unresolved: List[ConflictRecord] = field(default_factory=list)
    reasoning: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    iterations: int = 0
    stop_reason: str = "converged"
    expected_sessions: int = 0

    @property
    def is_complete(self) -> bool:
        return len(self.sessions) >= self.expected_sessions

    @property
    def unscheduled_count(self) -> int:
        return max(0, self.expected_sessions - len(self.sessions))


async def run_study_plan_agent(
    adapter: ToolProtocolAdapter,
    context: PlanContext,
    calendar: Any,
    configuration: Optional[Configuration] = None,
    *,
    max_iterations: Optional[int] = None,
    deadline_seconds: Optional[float] = None,
) -> AgentResult:
    """Run the planning loop for one context.

    Raises ProviderError (with `.usage` set) when a provider call fails, and
    CalendarReadError when the calendar cannot be read in fail-closed mode.
    """
    cfg = configuration or Configuration()
    max_iterations = max_iterations if max_iterations is not None else cfg.max_iterations
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")
    if deadline_seconds is None:
        deadline_seconds = cfg.deadline_seconds

    initial_state = StudyPlanState(
        context=context,
        max_iterations=max_iterations,
        deadline_at=time.monotonic() + deadline_seconds if deadline_seconds is not None else None,
    )
    run_config = {
        "configurable": {
            "adapter": adapter,
            "calendar": calendar,
            "plan_context": context,
            "configuration": cfg,
        },
        # initialize + (agent, tools) per turn + finalize
        "recursion_limit": max_iterations * 2 + 10,
    }

    result = await study_plan_graph.ainvoke(initial_state, run_config)

    return AgentResult(
        sessions=list(result.get("sessions") or []),
        unresolved=list(result.get("unresolved") or []),
        reasoning=result.get("reasoning") or "",
        usage=result.get("usage") or TokenUsage(),
        iterations=result.get("iteration", 0),
        stop_reason=result.get("stop_reason") or "converged",
        expected_sessions=context.total_sessions,
    )
