"""Executor package for running the codex CLI as a subprocess."""

from .cli import check_agent_available, find_agent_binary
from .models import Outcome, Settlement, StreamEvent
from .runner import EventStreamParser, agent_command, run_agent

__all__ = [
    "run_agent",
    "agent_command",
    "EventStreamParser",
    "check_agent_available",
    "find_agent_binary",
    "Outcome",
    "Settlement",
    "StreamEvent",
]
