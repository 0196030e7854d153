"""Planner logging helpers."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

_logger = logging.getLogger("planner")


def enable_planner_logging(level: int = logging.INFO, to_console: bool = True, to_file: bool = True) -> None:
    """Enable planner logging on demand.

    Adds console and file handlers to the 'planner' logger. Safe to call multiple times.
    """
    _logger.setLevel(level)
    if _logger.handlers:
        return
    fmt = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    if to_file:
        log_dir = Path(__file__).parent.parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / "planner.log", encoding="utf-8")
        fh.setFormatter(fmt)
        _logger.addHandler(fh)
    if to_console:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        _logger.addHandler(sh)


def preview(text: Any, limit: int = 300) -> str:
    try:
        s = str(text)
        return s if len(s) <= limit else s[:limit] + "... [truncated]"
    except Exception:
        return "[unprintable]"


def log_conversation(provider: str, messages: Sequence[BaseMessage]) -> None:
    """Log roles and key fields of the conversation about to be sent.

    Useful to verify tool call → tool result sequencing for each provider.
    """
    if not _logger.isEnabledFor(logging.DEBUG):
        return
    compact = []
    for m in messages:
        if isinstance(m, HumanMessage):
            entry = {"role": "task", "content": preview(m.content, 120)}
        elif isinstance(m, AIMessage):
            entry = {"role": "model", "tool_calls": [tc["name"] for tc in m.tool_calls]}
            if m.content:
                entry["content"] = preview(m.content, 120)
        elif isinstance(m, ToolMessage):
            entry = {"role": "tool", "name": m.name, "tool_call_id": m.tool_call_id}
        else:
            entry = {"role": m.type}
        compact.append(entry)
    _logger.debug(f"LLM REQ ({provider}) MESSAGES: {json.dumps(compact, ensure_ascii=False)}")
