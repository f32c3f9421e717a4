"""Turning request payloads into the single prompt string codex accepts.

Every extractor returns None when there is nothing to ask; callers
reject the request instead of running codex with an empty prompt.
"""

import json
from typing import Any, Iterable, Optional

PROMPT_MODES = ("raw_last", "transcript")
QUESTION_FIELDS = ("q", "prompt", "message")


def extract_question(raw: str) -> Optional[str]:
    """Extract the prompt from a plain /ask body.

    A JSON object carrying any of ``q``, ``prompt`` or ``message`` yields the
    first non-empty one, or None when all of them are empty. Non-string
    values are sent as compact JSON. Any other body falls back to the
    trimmed raw text.
    """
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError):
        payload = None

    if isinstance(payload, dict) and any(key in payload for key in QUESTION_FIELDS):
        for key in QUESTION_FIELDS:
            value = payload.get(key)
            if not value:
                continue
            if isinstance(value, str):
                return value
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return None

    question = raw.strip()
    return question or None


def flatten_content(content: Any) -> str:
    """Flatten chat message content to plain text.

    Accepts a string, a list of parts (strings or objects with ``text``)
    or a single object with ``text``.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(_part_text(part) for part in content)
    if isinstance(content, dict):
        return _part_text(content)
    return ""


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        text = part.get("text")
        if text is None:
            return ""
        return text if isinstance(text, str) else str(text)
    return ""


def _last_user_content(messages: list) -> Optional[str]:
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user":
            return flatten_content(message.get("content"))

    # No user turn: use whatever came last
    last = messages[-1]
    content = last.get("content") if isinstance(last, dict) else None
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, separators=(",", ":"))


def _transcript(messages: Iterable) -> str:
    rendered = []
    for message in messages:
        if not isinstance(message, dict) or not message.get("role"):
            continue
        role = str(message["role"]).upper()
        rendered.append(f"{role}:\n{flatten_content(message.get('content'))}")
    return "\n\n".join(rendered)


def messages_to_prompt(messages: Any, mode: str = "raw_last") -> Optional[str]:
    """Flatten a chat message list into one prompt.

    Args:
        messages: OpenAI-style list of ``{"role", "content"}`` objects.
        mode: ``raw_last`` sends only the latest user message;
            ``transcript`` renders the whole conversation.

    Returns:
        The prompt, or None if nothing usable was found.
    """
    if mode not in PROMPT_MODES:
        raise ValueError(f"Unknown prompt mode: {mode!r}. Expected one of {PROMPT_MODES}")
    if not isinstance(messages, list) or not messages:
        return None

    if mode == "raw_last":
        prompt = _last_user_content(messages)
    else:
        prompt = _transcript(messages)
    return prompt or None
