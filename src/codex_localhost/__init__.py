"""Expose `codex exec --json` as a local HTTP service."""

from .executor import Outcome, run_agent
from .prompts import extract_question, messages_to_prompt

__version__ = "0.1.0"

__all__ = [
    "run_agent",
    "Outcome",
    "extract_question",
    "messages_to_prompt",
    "__version__",
]
