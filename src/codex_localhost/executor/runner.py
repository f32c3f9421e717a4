"""Main execution logic for running `codex exec --json` as a subprocess.

One call to run_agent owns one child process, one stdout line buffer,
one stderr aggregate and one timeout. The run always settles into a
single Outcome; subprocess faults never escape as exceptions.
"""

import asyncio
import codecs
import logging
from os import PathLike
from typing import Optional, Union

from .logging import get_logger
from .models import Outcome, StreamEvent
from .utils import drain_lines, preview

_CHUNK_SIZE = 64 * 1024


def agent_command(codex_bin: str, prompt: str) -> list[str]:
    """Build the argv for one non-interactive codex turn."""
    return [codex_bin, "exec", "--json", "--skip-git-repo-check", prompt]


class EventStreamParser:
    """Incremental parser for the agent's JSON-Lines stdout.

    Bytes may arrive in arbitrary chunks; events are applied strictly in
    the order their lines appear. Lines that are not JSON objects are
    dropped.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.final_text = ""
        self.usage = None
        self.failure: Optional[dict] = None
        self.events_seen = 0

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Consume a stdout chunk and return the events it completed."""
        return self._consume(self._decoder.decode(chunk))

    def close(self) -> list[StreamEvent]:
        """Flush the decoder at end of stream.

        A trailing fragment without a line terminator is discarded.
        """
        events = self._consume(self._decoder.decode(b"", final=True))
        if self._buffer.strip():
            self._logger.debug(f"Dropping unterminated stdout fragment: {preview(self._buffer.strip(), 100)}")
        self._buffer = ""
        return events

    def _consume(self, text: str) -> list[StreamEvent]:
        self._buffer, lines = drain_lines(self._buffer, text)
        events = []
        for line in lines:
            event = StreamEvent.from_json(line)
            if event is None:
                self._logger.debug(f"Ignoring non-JSON line: {preview(line, 100)}")
                continue
            self._apply(event)
            events.append(event)
        return events

    def _apply(self, event: StreamEvent) -> None:
        self.events_seen += 1
        self._logger.debug(f"Event: type={event.event_type}")

        text = event.agent_message
        if text is not None:
            self.final_text = text
            return

        usage = event.usage
        if usage is not None:
            self.usage = usage
            return

        failure = event.failure
        if failure is not None:
            self._logger.debug(f"Turn failed: {failure}")
            self.failure = failure


async def _read_stdout(
    stdout: asyncio.StreamReader,
    parser: EventStreamParser,
    logger: logging.Logger,
) -> None:
    """Read stdout to EOF, feeding the parser chunk by chunk."""
    try:
        while True:
            chunk = await stdout.read(_CHUNK_SIZE)
            if not chunk:
                break
            parser.feed(chunk)
        parser.close()
    except (BrokenPipeError, ConnectionError, OSError) as e:
        logger.debug(f"stdout closed: {type(e).__name__}")


async def _read_stderr(
    stderr: asyncio.StreamReader,
    parts: list[str],
    logger: logging.Logger,
) -> None:
    """Aggregate stderr verbatim. Never fatal."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            chunk = await stderr.read(_CHUNK_SIZE)
            if not chunk:
                break
            parts.append(decoder.decode(chunk))
        parts.append(decoder.decode(b"", final=True))
    except (BrokenPipeError, ConnectionError, OSError) as e:
        logger.debug(f"stderr closed: {type(e).__name__}")


async def _terminate(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        # Already exited between the timeout firing and the kill.
        pass
    await process.wait()


async def run_agent(
    prompt: str,
    *,
    codex_bin: str = "codex",
    workdir: Optional[Union[str, PathLike]] = None,
    timeout_ms: Optional[int] = None,
    capture_stderr: bool = True,
) -> Outcome:
    """Run one codex turn for a prompt and collect its outcome.

    Args:
        prompt: The prompt, passed as the trailing positional argument.
        codex_bin: Agent executable name or path.
        workdir: Working directory for the child. Defaults to ours.
        timeout_ms: Wall-clock limit in milliseconds. None disables it.
        capture_stderr: When False the child inherits our stderr.

    Returns:
        Outcome describing how the run settled.
    """
    logger = get_logger()
    cmd = agent_command(codex_bin, prompt)
    logger.info(f"🚀 Starting {codex_bin} | cwd: {workdir or '.'} | Prompt: {preview(prompt)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else None,
            cwd=workdir,
        )
    except (OSError, ValueError) as e:
        logger.error(f"❌ Failed to start {codex_bin}: {e}")
        return Outcome(spawn_error=str(e), exit_code=-1)

    parser = EventStreamParser(logger)
    stderr_parts: list[str] = []

    tasks = [asyncio.create_task(_read_stdout(process.stdout, parser, logger))]
    if process.stderr is not None:
        tasks.append(asyncio.create_task(_read_stderr(process.stderr, stderr_parts, logger)))

    async def drain_and_wait() -> int:
        # Streams first: the exit status can arrive before the last output.
        await asyncio.gather(*tasks)
        return await process.wait()

    timeout = timeout_ms / 1000.0 if timeout_ms is not None else None
    failure_override: Optional[dict] = None
    try:
        exit_code = await asyncio.wait_for(drain_and_wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"⏱️ {codex_bin} timed out after {timeout_ms}ms, killing")
        failure_override = {"message": f"Timed out after {timeout_ms}ms"}
        await _terminate(process)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        exit_code = process.returncode if process.returncode is not None else -1
    except Exception as e:
        logger.exception("Unexpected error while running codex")
        failure_override = {"message": str(e)}
        await _terminate(process)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        exit_code = -1

    outcome = Outcome(
        final_text=parser.final_text,
        usage=parser.usage,
        failure=failure_override or parser.failure,
        exit_code=exit_code if exit_code is not None else -1,
        stderr_text="".join(stderr_parts),
    )

    if outcome.ok:
        logger.info(f"✅ {codex_bin} completed | events: {parser.events_seen} | answer: {len(outcome.final_text)} chars")
    else:
        logger.error(f"❌ {codex_bin} failed ({outcome.settlement.value}): {preview(outcome.error_message or '', 200)}")
    return outcome
