"""State definition for the study plan workflow."""
import datetime as dt
from typing import Annotated, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.messages.tool import ToolCall
from langgraph.graph import add_messages
from pydantic import BaseModel, Field

from providers.base import TokenUsage
from scheduling.models import ConflictRecord, PlannedSession
from scheduling.timeutils import WEEKDAY_NAMES


class ConversationStateError(RuntimeError):
    """The model was about to be asked for a turn while a tool call was unanswered."""


class ChapterAllocation(BaseModel):
    """A syllabus chapter and how many sessions it should get."""
    chapter_number: int = Field(description="Chapter number (1-based)")
    title: str = Field(description="Chapter title")
    topics: List[str] = Field(default_factory=list, description="Subtopics covered by the chapter")
    session_count: int = Field(ge=0, description="Number of sessions to schedule for this chapter")


class PlanContext(BaseModel):
    """Everything the agent needs to plan one subject for one user."""

    user_id: int
    subject_id: int
    grade_id: int
    subject_name: str
    grade_name: str = ""

    start_date: dt.date
    end_date: dt.date
    preferred_weekdays: List[int] = Field(default_factory=list, description="Monday=0 ... Sunday=6; empty means every day")
    preferred_start_time: dt.time
    preferred_end_time: dt.time
    session_duration_minutes: int = Field(gt=0)

    chapters: List[ChapterAllocation] = Field(default_factory=list)

    @property
    def total_sessions(self) -> int:
        return sum(ch.session_count for ch in self.chapters)

    @property
    def weekday_names(self) -> List[str]:
        days = self.preferred_weekdays or range(7)
        return [WEEKDAY_NAMES[d].capitalize() for d in sorted(days)]


class StudyPlanState(BaseModel):
    """State for the study plan workflow.

    This state tracks:
    - The plan context (subject, dates, preferences, chapters)
    - The provider-neutral conversation
    - Iteration and deadline budgets
    - The accepted sessions and running token/cost totals
    """

    # Input
    context: PlanContext = Field(description="Subject, date range, preferences and chapter allocation")

    # Conversation (append-only merge using LangGraph's add_messages reducer)
    messages: Annotated[list, add_messages] = Field(
        default_factory=list, description="Task, model turns and tool results"
    )

    # Budgets
    iteration: int = Field(default=0, description="Model turns taken so far")
    max_iterations: int = Field(default=20, description="Hard cap on model turns")
    deadline_at: Optional[float] = Field(
        default=None, description="time.monotonic() value after which no new turn starts"
    )

    # Output
    sessions: List[PlannedSession] = Field(
        default_factory=list, description="Sessions accepted by the last successful submit_complete_plan"
    )
    unresolved: List[ConflictRecord] = Field(
        default_factory=list, description="Conflicts the repair search could not move"
    )
    reasoning: str = Field(default="", description="The model's closing text")
    usage: TokenUsage = Field(default_factory=TokenUsage, description="Tokens and cost across every turn")
    stop_reason: Optional[str] = Field(default=None, description="converged, all_scheduled, max_iterations or deadline")

    class Config:
        arbitrary_types_allowed = True


def pending_tool_calls(messages: List[BaseMessage]) -> List[ToolCall]:
    """Tool calls of the latest model turn that have no ToolMessage yet."""
    for index in range(len(messages) - 1, -1, -1):
        message = messages[index]
        if isinstance(message, AIMessage):
            answered = {m.tool_call_id for m in messages[index + 1:] if isinstance(m, ToolMessage)}
            return [call for call in message.tool_calls if call["id"] not in answered]
    return []


__all__ = [
    "ChapterAllocation",
    "ConversationStateError",
    "PlanContext",
    "PlannedSession",
    "StudyPlanState",
    "pending_tool_calls",
]
