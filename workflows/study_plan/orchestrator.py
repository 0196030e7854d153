"""Turns a study plan request into a planning run and persists the result."""
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field, field_validator

from database import connection
from database.calendar_store import SqlCalendarStore
from database.models import (
    GradeLevel,
    ScheduleStatus,
    StudyPlanEvent,
    StudyPlanSchedule,
    Subject,
    SyllabusChapter,
)
from providers import ProviderError, TokenUsage, ToolProtocolAdapter, get_adapter
from scheduling import BulkValidator, ConflictRecord, PlannedSession, reject_batch_overlaps
from scheduling.timeutils import eligible_dates, parse_clock, weekday_number, window_slots
from shared.config import Configuration
from .graph import AgentResult, run_study_plan_agent
from .state import ChapterAllocation, PlanContext

_logger = logging.getLogger("planner")

TIME_WINDOWS = {
    "morning": (dt.time(8, 0), dt.time(12, 0)),
    "afternoon": (dt.time(13, 0), dt.time(17, 0)),
    "evening": (dt.time(18, 0), dt.time(22, 0)),
}
DEFAULT_WINDOW = (dt.time(9, 0), dt.time(17, 0))


class PlanningInputError(ValueError):
    """The request cannot produce a plan (no valid dates, no chapters, bad window)."""


class ChapterRequest(BaseModel):
    chapter_number: int
    title: str
    topics: List[str] = Field(default_factory=list)
    session_count: Optional[int] = Field(default=None, ge=0, description="Leave empty to distribute evenly")


class PlanRequest(BaseModel):
    """A user's request for a study plan."""

    user_id: int
    subject_id: int
    grade_id: int
    subject_name: Optional[str] = None
    grade_name: Optional[str] = None

    start_date: dt.date
    end_date: dt.date
    selected_days: List[str] = Field(default_factory=list, description="Weekday names; empty means every day")
    time_preference: Optional[Literal["morning", "afternoon", "evening"]] = None
    preferred_start_time: Optional[dt.time] = None
    preferred_end_time: Optional[dt.time] = None
    session_duration_minutes: int = Field(default=60, gt=0)

    chapters: Optional[List[ChapterRequest]] = Field(
        default=None, description="Chapters to plan; loaded from the syllabus catalogue when omitted"
    )

    provider: Optional[str] = None
    model: Optional[str] = None

    @field_validator("preferred_start_time", "preferred_end_time", mode="before")
    @classmethod
    def parse_window_clock(cls, value):
        if value is None or value == "":
            return None
        return parse_clock(value)


@dataclass
class PlanOutcome:
    """What the caller reports to the user: complete, partial or failed."""

    status: Literal["complete", "partial", "failed"]
    context: Optional[PlanContext] = None
    sessions: List[PlannedSession] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)
    unscheduled: List[Dict[str, Any]] = field(default_factory=list)
    dropped: List[ConflictRecord] = field(default_factory=list)
    reasoning: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    provider: Optional[str] = None
    model: Optional[str] = None
    stop_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def unscheduled_count(self) -> int:
        return sum(item["missing"] for item in self.unscheduled)

    def summary(self) -> str:
        expected = self.context.total_sessions if self.context else 0
        if self.status == "complete":
            return f"Scheduled all {len(self.sessions)} sessions."
        if self.status == "partial":
            chapters = ", ".join(f"Chapter {u['chapter_number']} ({u['missing']} missing)" for u in self.unscheduled)
            return f"Scheduled {len(self.sessions)} of {expected} sessions. Not scheduled: {chapters}."
        return f"Study plan generation failed: {self.error}"


@dataclass
class SaveResult:
    schedule_id: int
    saved: int
    skipped: List[ConflictRecord] = field(default_factory=list)


def distribute_sessions(total: int, chapter_count: int) -> List[int]:
    """floor(total / k) sessions each; the first total mod k chapters get one more."""
    if chapter_count <= 0:
        return []
    base, extra = divmod(total, chapter_count)
    return [base + 1 if i < extra else base for i in range(chapter_count)]


class StudyPlanOrchestrator:
    """Builds the plan context, runs the agent and persists accepted sessions.

    Pass `adapter` to bypass provider selection (tests), `calendar` to read
    events from something other than the SQL store.
    """

    def __init__(
        self,
        configuration: Optional[Configuration] = None,
        *,
        calendar: Any = None,
        adapter: Optional[ToolProtocolAdapter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.configuration = configuration or Configuration()
        self.calendar = calendar if calendar is not None else SqlCalendarStore()
        self.adapter = adapter
        self.http_client = http_client

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def load_chapters(self, subject_id: int, grade_id: int) -> List[ChapterAllocation]:
        """Chapters from the syllabus catalogue, in chapter order, with no sessions allocated yet."""
        with connection.get_db_session() as db:
            rows = (
                db.query(SyllabusChapter)
                .filter(SyllabusChapter.subject_id == subject_id, SyllabusChapter.grade_id == grade_id)
                .order_by(SyllabusChapter.chapter_number)
                .all()
            )
            return [
                ChapterAllocation(
                    chapter_number=row.chapter_number,
                    title=row.chapter_title,
                    topics=list(row.subtopics or []),
                    session_count=0,
                )
                for row in rows
            ]

    def _lookup_names(self, subject_id: int, grade_id: int) -> tuple:
        with connection.get_db_session() as db:
            subject = db.get(Subject, subject_id)
            grade = db.get(GradeLevel, grade_id)
            return (subject.name if subject else None), (grade.name if grade else None)

    def build_context(self, request: PlanRequest) -> PlanContext:
        if request.end_date < request.start_date:
            raise PlanningInputError(f"end_date {request.end_date} is before start_date {request.start_date}")

        try:
            weekdays = sorted({weekday_number(day) for day in request.selected_days})
        except ValueError as e:
            raise PlanningInputError(str(e)) from e

        if request.preferred_start_time and request.preferred_end_time:
            window_start, window_end = request.preferred_start_time, request.preferred_end_time
        else:
            window_start, window_end = TIME_WINDOWS.get(request.time_preference or "", DEFAULT_WINDOW)
        if window_end <= window_start:
            raise PlanningInputError(f"Preferred window {window_start:%H:%M}-{window_end:%H:%M} is empty")
        if not window_slots(window_start, window_end, request.session_duration_minutes):
            raise PlanningInputError(
                f"A {request.session_duration_minutes}-minute session does not fit in "
                f"{window_start:%H:%M}-{window_end:%H:%M}"
            )

        valid_dates = eligible_dates(request.start_date, request.end_date, weekdays)
        if not valid_dates:
            raise PlanningInputError(
                f"No valid dates found between {request.start_date} and {request.end_date} "
                f"for the selected days: {', '.join(request.selected_days)}. "
                "Please adjust your date range or selected days."
            )

        if request.chapters is not None:
            chapters = [
                ChapterAllocation(
                    chapter_number=ch.chapter_number,
                    title=ch.title,
                    topics=ch.topics,
                    session_count=ch.session_count or 0,
                )
                for ch in request.chapters
            ]
            explicit = all(ch.session_count is not None for ch in request.chapters)
        else:
            chapters = self.load_chapters(request.subject_id, request.grade_id)
            explicit = False
        if not chapters:
            raise PlanningInputError(
                "No chapters available to create a study plan. "
                "Please select a subject with available syllabus chapters."
            )

        if not explicit:
            counts = distribute_sessions(len(valid_dates), len(chapters))
            chapters = [ch.model_copy(update={"session_count": n}) for ch, n in zip(chapters, counts)]

        subject_name, grade_name = request.subject_name, request.grade_name or ""
        if subject_name is None:
            stored_subject, stored_grade = self._lookup_names(request.subject_id, request.grade_id)
            subject_name = stored_subject or f"Subject {request.subject_id}"
            grade_name = grade_name or stored_grade or ""

        context = PlanContext(
            user_id=request.user_id,
            subject_id=request.subject_id,
            grade_id=request.grade_id,
            subject_name=subject_name,
            grade_name=grade_name,
            start_date=request.start_date,
            end_date=request.end_date,
            preferred_weekdays=weekdays,
            preferred_start_time=window_start,
            preferred_end_time=window_end,
            session_duration_minutes=request.session_duration_minutes,
            chapters=chapters,
        )
        _logger.info(f"ORCHESTRATOR: {len(valid_dates)} valid dates, {len(chapters)} chapters, "
                     f"{context.total_sessions} sessions to plan")
        return context

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _adapter_for(self, request: PlanRequest) -> ToolProtocolAdapter:
        if self.adapter is not None:
            return self.adapter
        agent_config = self.configuration.agent_config(request.provider, request.model)
        if not agent_config.api_key:
            raise ValueError(f"No API key configured for provider {agent_config.provider!r}")
        return get_adapter(
            agent_config,
            timeout=self.configuration.llm_timeout,
            max_retries=self.configuration.llm_max_retries,
            backoff=self.configuration.llm_backoff,
            http_client=self.http_client,
        )

    async def generate(self, request: PlanRequest) -> PlanOutcome:
        """Plan one request. ProviderError becomes a failed outcome that keeps the usage spent."""
        context = self.build_context(request)
        adapter = self._adapter_for(request)
        provider, model = adapter.config.provider, adapter.config.model

        try:
            result = await run_study_plan_agent(adapter, context, self.calendar, self.configuration)
        except ProviderError as e:
            _logger.error(f"ORCHESTRATOR: Planning failed: {e}")
            return PlanOutcome(
                status="failed",
                context=context,
                usage=e.usage or TokenUsage(),
                provider=provider,
                model=model,
                error=e.body,
            )

        return self._outcome(context, result, provider, model)

    def _outcome(self, context: PlanContext, result: AgentResult, provider: str, model: str) -> PlanOutcome:
        scheduled: Dict[int, int] = {}
        for session in result.sessions:
            scheduled[session.chapter_number] = scheduled.get(session.chapter_number, 0) + 1
        unscheduled = [
            {
                "chapter_number": ch.chapter_number,
                "title": ch.title,
                "expected": ch.session_count,
                "scheduled": scheduled.get(ch.chapter_number, 0),
                "missing": ch.session_count - scheduled.get(ch.chapter_number, 0),
            }
            for ch in context.chapters
            if scheduled.get(ch.chapter_number, 0) < ch.session_count
        ]

        if not result.sessions:
            status, error = "failed", (
                "The agent scheduled 0 sessions. This may be due to calendar conflicts "
                "or date range constraints. Please adjust your parameters and try again."
            )
        elif result.is_complete:
            status, error = "complete", None
        else:
            status, error = "partial", None
            _logger.warning(f"ORCHESTRATOR: Partial plan, {len(result.sessions)} of "
                            f"{result.expected_sessions} sessions scheduled")

        return PlanOutcome(
            status=status,
            context=context,
            sessions=result.sessions,
            events=self.to_event_records(result.sessions),
            unscheduled=unscheduled,
            dropped=result.unresolved,
            reasoning=result.reasoning,
            usage=result.usage,
            provider=provider,
            model=model,
            stop_reason=result.stop_reason,
            error=error,
        )

    @staticmethod
    def to_event_records(sessions: List[PlannedSession]) -> List[Dict[str, Any]]:
        return [
            {
                "title": s.title,
                "description": f"Topics: {', '.join(s.topics)}",
                "date": s.date.isoformat(),
                "start_time": s.start_time.strftime("%H:%M"),
                "end_time": s.end_time.strftime("%H:%M"),
                "chapter_number": s.chapter_number,
                "topics": list(s.topics),
            }
            for s in sessions
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, outcome: PlanOutcome) -> SaveResult:
        """Persist the schedule and its events in one transaction.

        Every session is validated again inside the transaction, against the
        calendar and against the sessions saved before it; sessions that now
        conflict are skipped and reported.
        """
        if outcome.status == "failed" or outcome.context is None:
            raise ValueError("Only complete or partial outcomes can be saved")
        ctx = outcome.context

        with connection.get_db_session() as db:
            validator = BulkValidator(SqlCalendarStore(session=db), fail_open=self.configuration.calendar_fail_open)
            check = reject_batch_overlaps(
                outcome.sessions, validator.validate(ctx.user_id, outcome.sessions, ctx.subject_id, ctx.grade_id)
            )

            partial = outcome.status == "partial" or bool(check.conflicts)
            schedule = StudyPlanSchedule(
                user_id=ctx.user_id,
                subject_id=ctx.subject_id,
                grade_id=ctx.grade_id,
                start_date=ctx.start_date,
                end_date=ctx.end_date,
                preferences={
                    "selected_days": ctx.preferred_weekdays,
                    "preferred_start_time": ctx.preferred_start_time.strftime("%H:%M"),
                    "preferred_end_time": ctx.preferred_end_time.strftime("%H:%M"),
                    "session_duration_minutes": ctx.session_duration_minutes,
                },
                status=ScheduleStatus.PARTIAL if partial else ScheduleStatus.ACTIVE,
                ai_provider=outcome.provider,
                ai_model=outcome.model,
                input_tokens=outcome.usage.input_tokens,
                output_tokens=outcome.usage.output_tokens,
                cost_usd=outcome.usage.cost_usd,
            )
            db.add(schedule)
            db.flush()

            for session in check.valid_sessions:
                db.add(
                    StudyPlanEvent(
                        schedule_id=schedule.id,
                        user_id=ctx.user_id,
                        title=session.title,
                        description=f"Topics: {', '.join(session.topics)}",
                        event_date=session.date,
                        start_time=session.start_time,
                        end_time=session.end_time,
                        chapter_number=session.chapter_number,
                        topics=list(session.topics),
                    )
                )

            for conflict in check.conflicts:
                _logger.warning(f"ORCHESTRATOR: Skipped '{conflict.title}' on {conflict.date}, "
                                f"now conflicts with {conflict.conflict_with}")
            _logger.info(f"ORCHESTRATOR: Saved schedule {schedule.id} with {len(check.valid_sessions)} events "
                         f"({len(check.conflicts)} skipped)")
            return SaveResult(schedule_id=schedule.id, saved=len(check.valid_sessions), skipped=check.conflicts)
