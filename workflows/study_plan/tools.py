"""Tools the study plan agent can call.

Both tools read their collaborators from the injected RunnableConfig:
configurable["calendar"] (a calendar store), configurable["plan_context"]
(PlanContext) and configurable["configuration"] (Configuration).
"""
import logging
from typing import Annotated, Any, Dict, List, Tuple

from langchain_core.messages.tool import ToolCall
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import InjectedToolArg, tool
from langchain_core.utils.function_calling import convert_to_openai_function

from database.calendar_store import CalendarReadError
from shared.config import Configuration
from scheduling import (
    BulkValidator,
    CalendarSurveyor,
    ConflictChecker,
    PlannedSession,
    SlotRepairer,
    reject_batch_overlaps,
)
from scheduling.repair import RepairResult
from .state import PlanContext

_logger = logging.getLogger("planner")

MAX_REPORTED_CONFLICTS = 5


class ToolExecutionError(RuntimeError):
    """A tool call could not be executed (bad arguments or unknown tool)."""


def _resolve(config: RunnableConfig) -> Tuple[PlanContext, Any, Configuration]:
    configurable = (config or {}).get("configurable", {})
    try:
        return configurable["plan_context"], configurable["calendar"], Configuration.from_runnable_config(config)
    except KeyError as e:
        raise ToolExecutionError(f"Tool configuration is missing {e.args[0]!r}") from e


@tool
async def get_calendar_overview(
    limit: int = 20, *, config: Annotated[RunnableConfig, InjectedToolArg]
) -> Dict[str, Any]:
    """See which days in the plan's date range already have events.

    Returns the busy days on the preferred weekdays, least busy first, with the
    time slots already taken on each. Use it to steer sessions toward quieter
    days. Calling it is optional.

    Args:
        limit: Maximum number of busy days to return (default 20)
        config: Injected configuration (automatically provided)
    """
    ctx, calendar, cfg = _resolve(config)
    surveyor = CalendarSurveyor(calendar, fail_open=cfg.calendar_fail_open)
    periods = surveyor.survey(ctx.user_id, ctx.start_date, ctx.end_date, ctx.preferred_weekdays or None)
    limit = limit if limit and limit > 0 else 20
    _logger.info(f"TOOL: get_calendar_overview | busy_days={len(periods)} | limit={limit}")
    return {
        "busy_periods": [p.model_dump(mode="json") for p in periods[:limit]],
        "total_days_in_range": (ctx.end_date - ctx.start_date).days + 1,
    }


@tool
async def submit_complete_plan(
    sessions: List[PlannedSession], *, config: Annotated[RunnableConfig, InjectedToolArg]
) -> Dict[str, Any]:
    """Submit the COMPLETE study plan with every session in one call.

    The system validates all sessions against the calendar, moves conflicting
    sessions to free slots inside the preferred window where possible and
    returns the final schedule. Submitting again replaces the previous plan.

    Args:
        sessions: Every planned session (date, start_time, end_time, title,
            chapter_number, session_number, topics)
        config: Injected configuration (automatically provided)
    """
    ctx, calendar, cfg = _resolve(config)
    sessions = [s if isinstance(s, PlannedSession) else PlannedSession.model_validate(s) for s in sessions]

    validator = BulkValidator(calendar, fail_open=cfg.calendar_fail_open)
    validation = reject_batch_overlaps(
        sessions, validator.validate(ctx.user_id, sessions, ctx.subject_id, ctx.grade_id)
    )

    repair = RepairResult()
    if validation.conflicts:
        repairer = SlotRepairer(
            ConflictChecker(calendar, fail_open=cfg.calendar_fail_open),
            horizon_days=cfg.repair_horizon_days,
            full_scan=cfg.repair_full_scan,
        )
        repair = repairer.repair(
            ctx.user_id,
            validation.conflicts,
            sessions,
            ctx.preferred_start_time,
            ctx.preferred_end_time,
            ctx.session_duration_minutes,
            ctx.preferred_weekdays,
            ctx.start_date,
            ctx.end_date,
            ctx.subject_id,
            ctx.grade_id,
            accepted=validation.valid_sessions,
        )

    # Repaired sessions keep their original position in the plan.
    conflict_indices = validation.conflict_indices
    final_sessions = []
    for index, session in enumerate(sessions):
        if index not in conflict_indices:
            final_sessions.append(session)
        elif index in repair.resolved:
            final_sessions.append(repair.resolved[index])

    if repair.unresolved:
        _logger.warning(f"TOOL: submit_complete_plan | {len(repair.unresolved)} session(s) dropped, "
                        "no free slot found")
    _logger.info(
        f"TOOL: submit_complete_plan | planned={len(sessions)} | valid={len(validation.valid_sessions)} | "
        f"conflicts={len(validation.conflicts)} | repaired={len(repair.alternatives)} | final={len(final_sessions)}"
    )

    return {
        "success": True,
        "validation_result": {
            "total_planned": len(sessions),
            "valid_count": len(validation.valid_sessions),
            "conflict_count": len(validation.conflicts),
            "alternatives_found": len(repair.alternatives),
        },
        "final_sessions": [s.model_dump(mode="json") for s in final_sessions],
        "conflicts": [c.model_dump(mode="json") for c in validation.conflicts[:MAX_REPORTED_CONFLICTS]],
        "unresolved": [c.model_dump(mode="json") for c in repair.unresolved],
    }


TOOLS = [get_calendar_overview, submit_complete_plan]
TOOLS_BY_NAME = {t.name: t for t in TOOLS}


def function_declarations() -> List[Dict[str, Any]]:
    """Neutral {name, description, parameters} declarations for the adapters."""
    return [convert_to_openai_function(t) for t in TOOLS]


async def execute_tool_call(call: ToolCall, config: RunnableConfig) -> Dict[str, Any]:
    """Run one tool call; any error raised by the tool becomes an {"error": ...} payload.

    CalendarReadError propagates so a fail-closed calendar aborts the run.
    """
    name = call["name"]
    try:
        selected = TOOLS_BY_NAME.get(name)
        if selected is None:
            raise ToolExecutionError(f"Unknown tool: {name}. Available tools: {', '.join(TOOLS_BY_NAME)}")
        try:
            return await selected.ainvoke(call["args"], config=config)
        except CalendarReadError:
            raise
        except Exception as e:
            raise ToolExecutionError(f"{name} failed: {e}") from e
    except ToolExecutionError as e:
        _logger.warning(f"TOOL ERROR: {e}")
        return {"error": str(e)}
