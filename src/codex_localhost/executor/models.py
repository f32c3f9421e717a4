"""Data models for executor module."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

DEFAULT_FAILURE_MESSAGE = "Codex failed"


@dataclass
class StreamEvent:
    """Event from the `codex exec --json` stream."""
    event_type: str
    data: dict = field(default_factory=dict)

    @classmethod
    def from_json(cls, line: str) -> Optional["StreamEvent"]:
        """Parse a JSON line into a StreamEvent.

        Returns None for anything that is not a JSON object.
        """
        try:
            data = json.loads(line)
        except (ValueError, RecursionError):
            return None
        if not isinstance(data, dict):
            return None
        event_type = data.get("type")
        return cls(
            event_type=event_type if isinstance(event_type, str) else "unknown",
            data=data,
        )

    @property
    def agent_message(self) -> Optional[str]:
        """Text of an ``item.completed`` agent message, if this is one."""
        if self.event_type != "item.completed":
            return None
        item = self.data.get("item")
        if not isinstance(item, dict) or item.get("type") != "agent_message":
            return None
        text = item.get("text")
        return text if isinstance(text, str) else None

    @property
    def usage(self) -> Optional[Any]:
        """Usage payload of a ``turn.completed`` event, passed through as-is."""
        if self.event_type != "turn.completed":
            return None
        return self.data.get("usage")

    @property
    def failure(self) -> Optional[dict]:
        """Error object of a ``turn.failed`` event."""
        if self.event_type != "turn.failed":
            return None
        error = self.data.get("error")
        if isinstance(error, dict) and error:
            return error
        if isinstance(error, str) and error:
            return {"message": error}
        return {"message": "Codex turn failed"}


class Settlement(str, Enum):
    """How a run ended."""

    SUCCESS = "success"
    FAILURE = "failure"
    EXIT_ERROR = "exit_error"
    SPAWN_ERROR = "spawn_error"


@dataclass
class Outcome:
    """Terminal result of one agent run."""

    final_text: str = ""
    usage: Optional[Any] = None
    failure: Optional[dict] = None
    spawn_error: Optional[str] = None
    exit_code: int = 0
    stderr_text: str = ""

    @property
    def settlement(self) -> Settlement:
        if self.spawn_error is not None:
            return Settlement.SPAWN_ERROR
        if self.failure is not None:
            return Settlement.FAILURE
        if self.exit_code != 0:
            return Settlement.EXIT_ERROR
        return Settlement.SUCCESS

    @property
    def ok(self) -> bool:
        return self.settlement is Settlement.SUCCESS

    @property
    def error_message(self) -> Optional[str]:
        """Best available human-readable diagnostic, or None on success.

        An explicit failure wins over the exit code.
        """
        settlement = self.settlement
        if settlement is Settlement.SPAWN_ERROR:
            return (
                f"Failed to start codex: {self.spawn_error}. "
                "Set CODEX_BIN or update PATH."
            )
        if settlement is Settlement.FAILURE:
            message = self.failure.get("message") if self.failure else None
            return message if isinstance(message, str) and message else DEFAULT_FAILURE_MESSAGE
        if settlement is Settlement.EXIT_ERROR:
            return self.stderr_text.strip() or f"Codex exited with code {self.exit_code}"
        return None
