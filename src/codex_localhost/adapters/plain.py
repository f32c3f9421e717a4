"""Plain-text rendering of a run outcome for the /ask endpoint."""

import json
from dataclasses import dataclass, field

from ..executor import Outcome


@dataclass
class PlainResponse:
    """Status, body and extra headers of a text/plain reply."""

    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)


def render_plain(outcome: Outcome) -> PlainResponse:
    """Render an outcome as a text/plain reply.

    Any failure becomes a 500 carrying the best diagnostic. Success
    returns the final answer and echoes the exit code and usage, if any,
    in ``x-codex-*`` headers.
    """
    if not outcome.ok:
        return PlainResponse(status_code=500, body=outcome.error_message or "codex failed")

    headers = {}
    if outcome.usage is not None:
        headers["x-codex-usage"] = json.dumps(outcome.usage, separators=(",", ":"))
    headers["x-codex-exit-code"] = str(outcome.exit_code)
    return PlainResponse(status_code=200, body=outcome.final_text, headers=headers)
