"""Subprocess helpers."""

import asyncio
import os
from pathlib import Path
from typing import Sequence

from pushdeploy.core.events import LogSink

READ_CHUNK_SIZE = 64 * 1024

# Output without a newline is forwarded in pieces of at most this many bytes
MAX_LINE_BYTES = 64 * 1024


async def run_streaming(
    argv: Sequence[str],
    cwd: Path,
    on_log: LogSink,
    env: dict[str, str] | None = None,
) -> int:
    """Run a command, forwarding each output line to ``on_log``.

    stderr is merged into stdout so lines arrive in the order the child
    wrote them. Returns the exit code. If forwarding fails or the caller is
    cancelled, the child is killed and reaped before the error propagates.

    Raises:
        FileNotFoundError: If the executable does not exist
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        env={**os.environ, **(env or {})},
    )

    try:
        await _forward_lines(process.stdout, on_log)
        return await process.wait()
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()


async def _forward_lines(stream: asyncio.StreamReader, on_log: LogSink) -> None:
    pending = b""

    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break

        *lines, pending = (pending + chunk).split(b"\n")
        for raw in lines:
            await _emit(raw, on_log)

        while len(pending) >= MAX_LINE_BYTES:
            await _emit(pending[:MAX_LINE_BYTES], on_log)
            pending = pending[MAX_LINE_BYTES:]

    if pending:
        await _emit(pending, on_log)


async def _emit(raw: bytes, on_log: LogSink) -> None:
    line = raw.decode("utf-8", errors="replace").rstrip("\r")
    if line:
        await on_log(line)
