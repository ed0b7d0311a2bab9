"""Blocking, timeout-bounded invocation of external auditing tools.

Output is captured as raw bytes and handed back unmodified; interpreting it
is the caller's business. A timeout is a structured result, not a partial
report.
"""

from __future__ import annotations

import asyncio
import shutil
import time
from dataclasses import dataclass
from typing import Literal, Sequence

import structlog

from lockwarden.exceptions import OfflineViolation, ToolNotFoundError

log = structlog.get_logger("lockwarden.engine.tools")

DEFAULT_TIMEOUT = 300.0

# Commands that reach the network by default.
_NETWORK_TOOLS = frozenset({"curl", "wget", "git"})
_NETWORK_CARGO_SUBCOMMANDS = frozenset({"fetch", "install", "publish", "search", "update"})

ToolStatus = Literal["ok", "failed", "timeout"]


@dataclass(frozen=True)
class ToolResult:
    tool: str
    argv: tuple[str, ...]
    status: ToolStatus
    exit_code: int | None
    stdout: bytes
    stderr: bytes
    duration: float

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def check_offline(argv: Sequence[str]) -> None:
    """Raise OfflineViolation if *argv* would reach the network."""
    tool = argv[0].rsplit("/", 1)[-1]
    if tool in _NETWORK_TOOLS:
        raise OfflineViolation(f"{tool} is not allowed in offline mode", argv=list(argv))
    if tool == "cargo":
        subcommand = next((a for a in argv[1:] if not a.startswith("-")), None)
        if subcommand in _NETWORK_CARGO_SUBCOMMANDS and "--offline" not in argv:
            raise OfflineViolation(
                f"cargo {subcommand} is not allowed in offline mode", argv=list(argv)
            )


async def run_tool_async(
    argv: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    offline: bool = True,
    cwd: str | None = None,
) -> ToolResult:
    if not argv:
        raise ValueError("argv must not be empty")
    if offline:
        check_offline(argv)
    tool = argv[0]
    if shutil.which(tool) is None:
        raise ToolNotFoundError(tool)

    start = time.monotonic()
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        duration = time.monotonic() - start
        log.warning("tools.timeout", tool=tool, timeout=timeout)
        return ToolResult(tool, tuple(argv), "timeout", None, b"", b"", duration)

    duration = time.monotonic() - start
    status: ToolStatus = "ok" if proc.returncode == 0 else "failed"
    log.info("tools.finished", tool=tool, status=status, exit_code=proc.returncode)
    return ToolResult(tool, tuple(argv), status, proc.returncode, stdout, stderr, duration)


def run_tool(
    argv: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    offline: bool = True,
    cwd: str | None = None,
) -> ToolResult:
    """Run *argv* to completion or until *timeout* seconds elapse.

    Raises :class:`ToolNotFoundError` if the executable is missing and
    :class:`OfflineViolation` for network-capable commands when *offline*.
    """
    return asyncio.run(run_tool_async(argv, timeout=timeout, offline=offline, cwd=cwd))
