"""
Interactive console runner.

Reads user turns from stdin, streams replies to stdout and lets idle
talk take over when the console goes quiet.

Commands:
    /clear   reset the session (history + transient hooks)
    /quit    exit
"""

from __future__ import annotations

import asyncio
import sys

from companion import build_companion
from config import AppConfig
from invariants import TTS_FLUSH_SIGNAL
from observability.logger import log_event


def _print_literal(literal: str) -> None:
    if literal == TTS_FLUSH_SIGNAL:
        sys.stdout.write("\n")
    else:
        sys.stdout.write(literal)
    sys.stdout.flush()


async def main() -> None:
    config = AppConfig.load_from_env()
    companion = build_companion(config)
    companion.hooks.on_token_literal(_print_literal, persistent=True)
    companion.start()

    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break

            text = line.strip()
            if text in ("/quit", "/exit"):
                break
            if text == "/clear":
                companion.reset_session()
                continue
            if not text:
                continue

            try:
                await companion.say(text)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # Already logged by the pipeline; keep the console alive
                log_event({"event_type": "console_turn_failed", "error": str(exc)}, level="ERROR")
    finally:
        await companion.aclose()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
