"""Utility functions for executor module."""

LINE_TERMINATOR = "\n"


def drain_lines(buffer: str, chunk: str) -> tuple[str, list[str]]:
    """Append a chunk to the line buffer and split off every complete line.

    Lines are returned in order, stripped, with blank lines dropped. Text
    after the last terminator stays in the returned buffer until a later
    chunk completes it.

    Args:
        buffer: Text carried over from previous chunks.
        chunk: Newly arrived text.

    Returns:
        Tuple of (remaining buffer, complete lines).
    """
    buffer += chunk
    lines: list[str] = []
    while True:
        idx = buffer.find(LINE_TERMINATOR)
        if idx < 0:
            break
        line = buffer[:idx].strip()
        buffer = buffer[idx + 1:]
        if line:
            lines.append(line)
    return buffer, lines


def preview(text: str, limit: int = 80) -> str:
    """Shorten text for log lines."""
    return text[:limit] + "..." if len(text) > limit else text
