"""Pytest fixtures for codex-localhost tests."""

import asyncio
import json
import stat
import sys
from pathlib import Path

import pytest

from codex_localhost.config import Settings
from codex_localhost.executor import logging


class FakeStream:
    """Stand-in for asyncio.StreamReader serving canned chunks.

    With a release event, read() blocks after the chunks run out until
    the event is set, mimicking a child that never closes its pipe.
    """

    def __init__(self, chunks, released=None):
        self._chunks = list(chunks)
        self._released = released

    async def read(self, n=-1):
        if self._chunks:
            return self._chunks.pop(0)
        if self._released is not None:
            await self._released.wait()
        return b""


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process."""

    def __init__(self, stdout=(), stderr=(), returncode=0, hang=False):
        self._released = asyncio.Event()
        self._hang = hang
        self._exit_code = returncode
        self.stdout = FakeStream(stdout, self._released if hang else None)
        self.stderr = FakeStream(stderr, self._released if hang else None)
        self.returncode = None
        self.killed = False

    def kill(self):
        self.killed = True
        self._exit_code = -9
        self._released.set()

    async def wait(self):
        if self._hang:
            await self._released.wait()
        self.returncode = self._exit_code
        return self.returncode


def jsonl(*events) -> bytes:
    """Encode events as newline-terminated JSON lines."""
    return "".join(json.dumps(e) + "\n" for e in events).encode("utf-8")


def agent_message(text: str) -> dict:
    return {"type": "item.completed", "item": {"type": "agent_message", "text": text}}


@pytest.fixture
def reset_logger_singleton():
    """Reset the executor logger singleton around a test.

    Saves logging._logger, sets it to None for the test and restores the
    original value afterwards.
    """
    original_value = logging._logger

    logging._logger = None

    yield

    logging._logger = original_value


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway working directory."""
    return Settings(workdir=tmp_path, timeout_ms=5_000)


@pytest.fixture
def fake_process():
    """Factory for FakeProcess instances."""
    return FakeProcess


@pytest.fixture
def fake_agent(tmp_path):
    """Write an executable shell script standing in for the codex binary.

    Returns a callable taking the script body and returning its path.
    """
    if sys.platform == "win32":
        pytest.skip("shell script agents need a POSIX shell")

    def _make(body: str, name: str = "codex") -> Path:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
