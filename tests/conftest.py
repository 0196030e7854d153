import datetime as dt
import importlib
import sys
from pathlib import Path
from typing import Callable, Generator, List, Optional

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from database.calendar_store import CalendarEntry, CalendarReadError  # noqa: E402
from providers.base import ProviderReply, make_call  # noqa: E402
from shared.config import AgentConfig, Configuration  # noqa: E402


@pytest.fixture()
def temp_database(tmp_path, monkeypatch) -> Generator[Path, None, None]:
    """Create a temporary SQLite database and reload connection module."""
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_PATH", str(db_path))

    # Reload database.connection so it picks up the new env variable
    from database import connection as connection_module

    importlib.reload(connection_module)
    connection_module.init_db()

    yield db_path

    # Cleanup: remove env, reload to default state
    monkeypatch.delenv("DATABASE_PATH", raising=False)
    importlib.reload(connection_module)


class InMemoryCalendar:
    """Calendar store double: same read interface as SqlCalendarStore."""

    def __init__(self, fail: bool = False):
        self.entries: List[CalendarEntry] = []
        self.fail = fail
        self.reads = 0

    def add(self, day, start, end, subject_id=1, grade_id=1, title="Existing event", user_id=1,
            subject_name="Mathematics"):
        entry = CalendarEntry(
            id=len(self.entries) + 1,
            user_id=user_id,
            subject_id=subject_id,
            grade_id=grade_id,
            event_date=day,
            start_time=_clock(start),
            end_time=_clock(end),
            title=title,
            subject_name=subject_name,
        )
        self.entries.append(entry)
        return entry

    def events_between(self, user_id, start, end):
        self.reads += 1
        if self.fail:
            raise CalendarReadError("calendar unavailable")
        return sorted(
            (e for e in self.entries if e.user_id == user_id and start <= e.event_date <= end),
            key=lambda e: (e.event_date, e.start_time),
        )

    def events_on(self, user_id, day):
        return self.events_between(user_id, day, day)


def _clock(value):
    if isinstance(value, dt.time):
        return value
    hours, minutes = value.split(":")
    return dt.time(int(hours), int(minutes))


class ScriptedAdapter:
    """Fake provider: each turn calls `script(messages, turn)` for the next reply.

    Usage per turn is fixed so token totals are predictable.
    """

    def __init__(self, script: Callable, input_tokens: int = 100, output_tokens: int = 20,
                 cost_usd: float = 0.001, fail_on_turn: Optional[int] = None):
        self.config = AgentConfig(provider="openai", model="fake-model", api_key="test-key")
        self.script = script
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.cost_usd = cost_usd
        self.fail_on_turn = fail_on_turn
        self.turns = 0
        self.seen = []
        self.functions = None

    async def send(self, messages, functions):
        from providers.base import ProviderError

        self.turns += 1
        self.seen.append(list(messages))
        self.functions = functions
        if self.fail_on_turn is not None and self.turns == self.fail_on_turn:
            raise ProviderError("openai", 500, '{"error": {"message": "upstream exploded"}}')
        reply = self.script(messages, self.turns)
        reply.input_tokens = self.input_tokens
        reply.output_tokens = self.output_tokens
        reply.cost_usd = self.cost_usd
        return reply


def reply(text: str = "", *calls) -> ProviderReply:
    """Build a ProviderReply from (name, args) pairs."""
    return ProviderReply(text=text, function_calls=[make_call(name, args) for name, args in calls])


@pytest.fixture()
def calendar() -> InMemoryCalendar:
    return InMemoryCalendar()


@pytest.fixture()
def configuration() -> Configuration:
    return Configuration(
        provider="openai",
        model="fake-model",
        openai_api_key="test-key",
        anthropic_api_key=None,
        google_api_key=None,
        llm_max_retries=0,
        llm_backoff=0.0,
        max_iterations=20,
        deadline_seconds=None,
        calendar_fail_open=False,
        repair_full_scan=False,
        repair_horizon_days=14,
    )
