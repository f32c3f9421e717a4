"""One-shot CLI: ask codex a question and print its final answer."""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from .config import load_settings
from .executor import run_agent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ask-codex",
        description="Forward a single question to the local codex CLI and print the final agent message.",
    )
    parser.add_argument("question", nargs="*", help="The question. Read from stdin when omitted.")
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Kill codex after this many milliseconds (default: no limit)",
    )
    return parser


def _read_question(words: Sequence[str]) -> str:
    if words:
        return " ".join(words)
    return sys.stdin.read().strip()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    question = _read_question(args.question)
    if not question:
        print('Usage: ask-codex "your question"', file=sys.stderr)
        return 2

    settings = load_settings()
    outcome = asyncio.run(run_agent(
        question,
        codex_bin=settings.codex_bin,
        workdir=settings.workdir,
        timeout_ms=args.timeout_ms,
        capture_stderr=False,
    ))
    if outcome.spawn_error is not None:
        print(outcome.spawn_error, file=sys.stderr)
        return 1

    # The answer is printed even when codex exited non-zero.
    answer = outcome.final_text
    sys.stdout.write(answer if answer.endswith("\n") else answer + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
