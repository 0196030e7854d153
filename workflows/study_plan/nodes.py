"""Nodes for the study plan workflow."""
import json
import logging
import time
from typing import Dict, Literal, Optional

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langchain_core.runnables import RunnableConfig

from providers.base import ProviderError, ToolProtocolAdapter
from scheduling.models import ConflictRecord, PlannedSession
from scheduling.timeutils import add_minutes, eligible_dates
from .state import ConversationStateError, StudyPlanState, pending_tool_calls
from .tools import execute_tool_call, function_declarations, submit_complete_plan
from . import prompts

_logger = logging.getLogger("planner")


def _adapter(config: Optional[RunnableConfig]) -> ToolProtocolAdapter:
    adapter = (config or {}).get("configurable", {}).get("adapter")
    if adapter is None:
        raise ValueError("configurable['adapter'] is required to run the study plan workflow")
    return adapter


def build_task_prompt(state: StudyPlanState) -> str:
    ctx = state.context
    chapters = "\n".join(
        prompts.CHAPTER_LINE.format(
            number=ch.chapter_number,
            title=ch.title,
            count=ch.session_count,
            topics=", ".join(ch.topics) or "(none listed)",
        )
        for ch in ctx.chapters
    )
    dates = eligible_dates(ctx.start_date, ctx.end_date, ctx.preferred_weekdays)
    example_end = add_minutes(ctx.preferred_start_time, ctx.session_duration_minutes)
    return prompts.TASK_PROMPT.format(
        total_sessions=ctx.total_sessions,
        subject_name=ctx.subject_name,
        grade_line=f", Grade: {ctx.grade_name}" if ctx.grade_name else "",
        start_date=ctx.start_date.isoformat(),
        end_date=ctx.end_date.isoformat(),
        preferred_days=", ".join(ctx.weekday_names),
        preferred_start=ctx.preferred_start_time.strftime("%H:%M"),
        preferred_end=ctx.preferred_end_time.strftime("%H:%M"),
        duration=ctx.session_duration_minutes,
        chapters=chapters,
        example_date=(dates[0] if dates else ctx.start_date).isoformat(),
        example_end=example_end.strftime("%H:%M") if example_end else ctx.preferred_end_time.strftime("%H:%M"),
        first_chapter=ctx.chapters[0].chapter_number if ctx.chapters else 1,
    )


def stop_reason(state: StudyPlanState) -> Optional[str]:
    """Why the loop must not take another turn, or None to continue."""
    expected = state.context.total_sessions
    if expected and len(state.sessions) >= expected:
        return "all_scheduled"
    if state.iteration >= state.max_iterations:
        return "max_iterations"
    if state.deadline_at is not None and time.monotonic() >= state.deadline_at:
        return "deadline"
    return None


async def initialize_study_plan(
    state: StudyPlanState, *, config: Optional[RunnableConfig] = None
) -> Dict:
    """Seed the conversation with the task description."""
    ctx = state.context
    _logger.info(
        f"AGENT: Planning {ctx.total_sessions} sessions | subject={ctx.subject_name} | "
        f"{ctx.start_date}..{ctx.end_date} | chapters={len(ctx.chapters)} | max_iterations={state.max_iterations}"
    )
    return {"messages": [HumanMessage(content=build_task_prompt(state))]}


async def study_plan_agent(
    state: StudyPlanState, *, config: Optional[RunnableConfig] = None
) -> Dict:
    """Ask the model for its next turn and add the turn's usage to the totals.

    A ProviderError leaving this node carries `.usage` with the totals of every
    earlier turn.
    """
    unanswered = pending_tool_calls(state.messages)
    if unanswered:
        raise ConversationStateError(
            f"{len(unanswered)} tool call(s) unanswered: {[c['name'] for c in unanswered]}"
        )

    if state.deadline_at is not None and time.monotonic() >= state.deadline_at:
        _logger.warning(f"AGENT: Deadline passed before turn {state.iteration + 1}; not calling the model")
        return {"stop_reason": "deadline"}

    adapter = _adapter(config)
    try:
        reply = await adapter.send(state.messages, function_declarations())
    except ProviderError as e:
        e.usage = state.usage
        _logger.error(f"AGENT: Provider call failed on turn {state.iteration + 1}: {e}")
        raise

    iteration = state.iteration + 1
    update: Dict = {
        "messages": [reply.to_message()],
        "iteration": iteration,
        "usage": state.usage + reply.usage,
    }
    _logger.info(f"AGENT: Turn {iteration}/{state.max_iterations} | calls={[c['name'] for c in reply.function_calls]}")

    if not reply.function_calls:
        update["reasoning"] = reply.text
        update["stop_reason"] = "converged"
    return update


async def run_tools(
    state: StudyPlanState, *, config: Optional[RunnableConfig] = None
) -> Dict:
    """Execute the latest turn's tool calls one after another, in order."""
    last = state.messages[-1]
    results = []
    update: Dict = {}

    for call in last.tool_calls:
        payload = await execute_tool_call(call, config)
        failed = "error" in payload
        results.append(
            ToolMessage(
                content=json.dumps(payload, default=str),
                name=call["name"],
                tool_call_id=call["id"],
                status="error" if failed else "success",
            )
        )
        if call["name"] == submit_complete_plan.name and not failed and payload.get("success"):
            update["sessions"] = [PlannedSession.model_validate(s) for s in payload["final_sessions"]]
            update["unresolved"] = [ConflictRecord.model_validate(c) for c in payload.get("unresolved", [])]
            _logger.info(f"AGENT: Accepted {len(update['sessions'])}/{state.context.total_sessions} sessions")

    update["messages"] = results
    return update


async def finalize_study_plan(
    state: StudyPlanState, *, config: Optional[RunnableConfig] = None
) -> Dict:
    """Record why the loop stopped; warn when the plan is short."""
    reason = state.stop_reason or stop_reason(state) or "converged"
    expected = state.context.total_sessions

    if reason == "max_iterations":
        _logger.warning(f"AGENT: Reached max iterations ({state.max_iterations}); plan may be incomplete")
    elif reason == "deadline":
        _logger.warning(f"AGENT: Deadline passed after {state.iteration} turn(s); plan may be incomplete")
    if len(state.sessions) < expected:
        _logger.warning(f"AGENT: Only scheduled {len(state.sessions)}/{expected} sessions")

    _logger.info(
        f"AGENT: Done | reason={reason} | sessions={len(state.sessions)}/{expected} | turns={state.iteration} | "
        f"tokens in={state.usage.input_tokens} out={state.usage.output_tokens} | cost=${state.usage.cost_usd:.6f}"
    )
    return {"stop_reason": reason}


def route_after_agent(
    state: StudyPlanState,
) -> Literal["tools", "finalize"]:
    """Run tools when the model asked for any; otherwise the loop has converged."""
    last_message = state.messages[-1] if state.messages else None
    if isinstance(last_message, AIMessage) and last_message.tool_calls:
        return "tools"
    return "finalize"


def route_after_tools(
    state: StudyPlanState,
) -> Literal["agent", "finalize"]:
    """Check the budgets before starting another turn."""
    if stop_reason(state):
        return "finalize"
    return "agent"
