"""OpenAI chat-completions rendering of a run outcome."""

import json
import re
import time
from typing import AsyncIterator, Awaitable, Optional

from ..executor import Outcome, Settlement

SSE_DONE = "data: [DONE]\n\n"
ZERO_USAGE = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

_EVENT_STREAM = re.compile(r"text/event-stream", re.IGNORECASE)


def completion_id() -> str:
    return f"chatcmpl_{int(time.time() * 1000)}"


def should_stream(
    stream: object,
    accept: Optional[str],
    force_stream: bool = False,
    force_non_stream: bool = False,
) -> bool:
    """Decide between SSE and a single JSON body.

    The client asks for a stream with a truthy ``stream`` field or an
    ``Accept: text/event-stream`` header. ``force_stream`` turns it on
    regardless; ``force_non_stream`` turns it off and wins over everything.
    """
    if force_non_stream:
        return False
    client_wants_sse = bool(accept and _EVENT_STREAM.search(accept))
    return force_stream or bool(stream) or client_wants_sse


def error_body(outcome: Outcome) -> dict:
    """The ``{"error": {...}}`` envelope for a failed outcome."""
    error = {"message": outcome.error_message}
    if outcome.settlement is Settlement.EXIT_ERROR:
        error["code"] = outcome.exit_code
    return {"error": error}


def render_chat(outcome: Outcome, model: str) -> tuple[int, dict]:
    """Render an outcome as a non-streaming chat completion.

    Returns:
        (status_code, JSON body)
    """
    if not outcome.ok:
        return 500, error_body(outcome)

    return 200, {
        "id": completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": outcome.final_text},
                "finish_reason": "stop",
            }
        ],
        "usage": outcome.usage if outcome.usage is not None else dict(ZERO_USAGE),
    }


def sse(obj: dict) -> str:
    """Frame one object as a Server-Sent Events data line."""
    return f"data: {json.dumps(obj, ensure_ascii=False)}\n\n"


def _chunk(model: str, created: int, delta: dict, finish_reason: Optional[str] = None) -> dict:
    return {
        "id": completion_id(),
        "object": "chat.completion.chunk",
        "created": created,
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


async def stream_chat(outcome: Awaitable[Outcome], model: str) -> AsyncIterator[str]:
    """Yield the SSE frames for one chat completion.

    The role delta goes out before the run settles; the answer is sent
    as a single content delta once it has.
    """
    created = int(time.time())
    yield sse(_chunk(model, created, {"role": "assistant"}))

    result = await outcome
    if not result.ok:
        yield sse({"error": {"message": result.error_message}})
        yield SSE_DONE
        return

    yield sse(_chunk(model, created, {"content": result.final_text}))
    yield sse(_chunk(model, created, {}, finish_reason="stop"))
    yield SSE_DONE


def models_list(model_id: str) -> dict:
    """The static /v1/models listing."""
    return {
        "object": "list",
        "data": [
            {"id": model_id, "object": "model", "created": int(time.time()), "owned_by": "local"},
        ],
    }
