"""Tests for executor.runner module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from codex_localhost.executor.models import Settlement
from codex_localhost.executor.runner import EventStreamParser, agent_command, run_agent
from conftest import agent_message, jsonl

FAILED = {"type": "turn.failed", "error": {"message": "model overloaded"}}
USAGE = {"type": "turn.completed", "usage": {"input_tokens": 12, "output_tokens": 3}}


def test_agent_command():
    assert agent_command("/opt/codex", "hi there") == [
        "/opt/codex", "exec", "--json", "--skip-git-repo-check", "hi there",
    ]


class TestEventStreamParser:
    """Tests for EventStreamParser class."""

    def _parse(self, chunks):
        parser = EventStreamParser(logger=MagicMock())
        events = []
        for chunk in chunks:
            events.extend(parser.feed(chunk))
        events.extend(parser.close())
        return parser, events

    def test_last_agent_message_wins(self):
        parser, events = self._parse([jsonl(agent_message("draft"), agent_message("final"))])

        assert parser.final_text == "final"
        assert len(events) == 2

    def test_usage_and_failure_captured(self):
        parser, _ = self._parse([jsonl(USAGE, FAILED, {"type": "turn.completed", "usage": {"n": 1}})])

        assert parser.usage == {"n": 1}
        assert parser.failure == {"message": "model overloaded"}

    def test_malformed_lines_ignored(self):
        data = b"warning: not json\n" + jsonl(agent_message("ok")) + b"{broken\n"
        parser, events = self._parse([data])

        assert parser.final_text == "ok"
        assert [e.event_type for e in events] == ["item.completed"]

    @pytest.mark.parametrize("bad_line", [b"1" * 5000, b"[" * 100000], ids=["huge-int", "deep-nesting"])
    def test_undecodable_lines_ignored(self, bad_line):
        """Lines json rejects with ValueError or RecursionError are skipped."""
        parser, events = self._parse([bad_line + b"\n" + jsonl(agent_message("pong"))])

        assert parser.final_text == "pong"
        assert [e.event_type for e in events] == ["item.completed"]

    def test_unterminated_tail_dropped(self):
        data = jsonl(agent_message("kept")) + b'{"type": "item.completed", "item": {"type": "agent_message", "text": "lost"}}'
        parser, _ = self._parse([data])

        assert parser.final_text == "kept"

    @pytest.mark.parametrize("size", [1, 5, 13, 100])
    def test_chunking_is_invisible(self, size):
        """Arbitrary byte chunks, including split UTF-8 sequences, parse identically."""
        data = jsonl({"type": "thread.started"}, agent_message("naïve café ✓"), USAGE)
        whole_parser, whole_events = self._parse([data])
        chunked_parser, chunked_events = self._parse([data[i:i + size] for i in range(0, len(data), size)])

        assert [e.data for e in chunked_events] == [e.data for e in whole_events]
        assert chunked_parser.final_text == whole_parser.final_text == "naïve café ✓"
        assert chunked_parser.usage == whole_parser.usage

    def test_reparse_is_idempotent(self):
        data = jsonl(agent_message("a"), USAGE, FAILED)
        first, _ = self._parse([data])
        second, _ = self._parse([data])

        assert (first.final_text, first.usage, first.failure) == (second.final_text, second.usage, second.failure)


class TestRunAgent:
    """Tests for run_agent() function."""

    @pytest.mark.asyncio
    async def test_success(self, reset_logger_singleton, fake_process):
        process = fake_process(
            stdout=[jsonl({"type": "thread.started", "thread_id": "t"}, agent_message("pong")), jsonl(USAGE)],
            returncode=0,
        )
        create = AsyncMock(return_value=process)

        with patch("asyncio.create_subprocess_exec", create):
            outcome = await run_agent("ping", codex_bin="codex", workdir="/tmp", timeout_ms=1_000)

        assert outcome.settlement is Settlement.SUCCESS
        assert outcome.final_text == "pong"
        assert outcome.usage == {"input_tokens": 12, "output_tokens": 3}
        assert outcome.exit_code == 0

        args, kwargs = create.call_args
        assert list(args) == ["codex", "exec", "--json", "--skip-git-repo-check", "ping"]
        assert kwargs["stdin"] == asyncio.subprocess.DEVNULL
        assert kwargs["cwd"] == "/tmp"

    @pytest.mark.asyncio
    async def test_line_split_across_chunks(self, reset_logger_singleton, fake_process):
        data = jsonl(agent_message("split"))
        process = fake_process(stdout=[data[:10], data[10:25], data[25:]])

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q")

        assert outcome.final_text == "split"

    @pytest.mark.asyncio
    async def test_nonzero_exit_reports_stderr(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[], stderr=[b"bo", b"om"], returncode=1)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q")

        assert outcome.settlement is Settlement.EXIT_ERROR
        assert outcome.stderr_text == "boom"
        assert outcome.error_message == "boom"

    @pytest.mark.asyncio
    async def test_turn_failed_beats_exit_code(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[jsonl(FAILED)], stderr=[b"trace"], returncode=1)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q")

        assert outcome.settlement is Settlement.FAILURE
        assert outcome.error_message == "model overloaded"
        assert outcome.exit_code == 1

    @pytest.mark.asyncio
    async def test_stderr_not_fatal(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[jsonl(agent_message("fine"))], stderr=[b"progress...\n"], returncode=0)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q")

        assert outcome.ok
        assert outcome.stderr_text == "progress...\n"

    @pytest.mark.asyncio
    async def test_spawn_error(self, reset_logger_singleton):
        create = AsyncMock(side_effect=FileNotFoundError(2, "No such file or directory", "codex"))

        with patch("asyncio.create_subprocess_exec", create):
            outcome = await run_agent("q")

        assert outcome.settlement is Settlement.SPAWN_ERROR
        assert "No such file or directory" in outcome.spawn_error
        assert outcome.exit_code == -1
        assert outcome.error_message.startswith("Failed to start codex:")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, reset_logger_singleton, fake_process):
        """A child that never closes is killed and reported as timed out."""
        process = fake_process(stdout=[jsonl(FAILED, agent_message("partial"))], hang=True)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q", timeout_ms=50)

        assert process.killed is True
        assert outcome.settlement is Settlement.FAILURE
        assert outcome.failure == {"message": "Timed out after 50ms"}
        assert "50" in outcome.error_message
        assert outcome.final_text == "partial"
        assert outcome.exit_code == -9

    @pytest.mark.asyncio
    async def test_no_timeout_after_settling(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[jsonl(agent_message("quick"))])

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("q", timeout_ms=30)
        await asyncio.sleep(0.06)

        assert outcome.ok
        assert process.killed is False

    @pytest.mark.asyncio
    async def test_inherited_stderr(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[jsonl(agent_message("x"))])
        process.stderr = None
        create = AsyncMock(return_value=process)

        with patch("asyncio.create_subprocess_exec", create):
            outcome = await run_agent("q", capture_stderr=False)

        assert create.call_args.kwargs["stderr"] is None
        assert outcome.stderr_text == ""
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_undecodable_line_does_not_abort(self, reset_logger_singleton, fake_process):
        process = fake_process(stdout=[b"1" * 5000 + b"\n", jsonl(agent_message("pong"))], returncode=0)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            outcome = await run_agent("ping")

        assert outcome.ok
        assert outcome.final_text == "pong"
        assert process.killed is False

    @pytest.mark.asyncio
    async def test_unexpected_error_reaps_readers(self, reset_logger_singleton, fake_process):
        """An internal error kills the child and leaves no reader task behind."""
        process = fake_process(stdout=[jsonl(agent_message("x"))], hang=True)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)), \
                patch.object(EventStreamParser, "feed", side_effect=RuntimeError("kaput")):
            outcome = await run_agent("q")

        assert process.killed is True
        assert outcome.failure == {"message": "kaput"}
        assert outcome.exit_code == -1
        assert asyncio.all_tasks() == {asyncio.current_task()}


class TestRunAgentRealProcess:
    """run_agent() against a real child process."""

    @pytest.mark.asyncio
    async def test_script_agent(self, reset_logger_singleton, fake_agent, tmp_path):
        script = fake_agent(
            "echo 'banner line'\n"
            "echo '{\"type\":\"item.completed\",\"item\":{\"type\":\"agent_message\",\"text\":\"pong\"}}'\n"
            "echo 'diag' >&2"
        )

        outcome = await run_agent("ping", codex_bin=str(script), workdir=tmp_path, timeout_ms=10_000)

        assert outcome.ok
        assert outcome.final_text == "pong"
        assert outcome.stderr_text == "diag\n"

    @pytest.mark.asyncio
    async def test_script_receives_prompt_argument(self, reset_logger_singleton, fake_agent, tmp_path):
        script = fake_agent(
            'printf \'{"type":"item.completed","item":{"type":"agent_message","text":"%s|%s|%s|%s"}}\\n\' "$1" "$2" "$3" "$4"'
        )

        outcome = await run_agent("the prompt", codex_bin=str(script), workdir=tmp_path, timeout_ms=10_000)

        assert outcome.final_text == "exec|--json|--skip-git-repo-check|the prompt"

    @pytest.mark.asyncio
    async def test_script_timeout(self, reset_logger_singleton, fake_agent, tmp_path):
        script = fake_agent("exec sleep 30")

        outcome = await run_agent("q", codex_bin=str(script), workdir=tmp_path, timeout_ms=200)

        assert outcome.failure == {"message": "Timed out after 200ms"}
        assert outcome.exit_code != 0

    @pytest.mark.asyncio
    async def test_missing_binary(self, reset_logger_singleton, tmp_path):
        outcome = await run_agent("q", codex_bin=str(tmp_path / "nope"), workdir=tmp_path)

        assert outcome.settlement is Settlement.SPAWN_ERROR
