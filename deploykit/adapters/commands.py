"""Async subprocess helper shared by the command-line adapters."""

import asyncio
import os
import shlex
from pathlib import Path

from pydantic import BaseModel

from deploykit.utils.logging import get_logger

logger = get_logger(__name__)

COMMAND_NOT_FOUND = 127


class CommandResult(BaseModel):
    """Outcome of an external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def error_preview(self, limit: int = 500) -> str:
        text = self.stderr.strip() or self.stdout.strip()
        return text[-limit:] if text else f"exit code {self.returncode}"


async def run_command(
    cmd: list[str] | str,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: float = 120,
) -> CommandResult:
    """Run ``cmd`` and capture its output.

    A string is run through the shell, a list is executed directly.
    Extra ``env`` entries are layered over the current environment.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    display = cmd if isinstance(cmd, str) else shlex.join(cmd)
    logger.debug("command.started", cmd=display, cwd=str(cwd) if cwd else None)

    try:
        if isinstance(cmd, str):
            process = await asyncio.create_subprocess_shell(
                cmd,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
            )
        else:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
            )
    except OSError as e:
        # Missing executable or cwd; reported like a shell would
        logger.warning("command.spawn_failed", cmd=display, error=str(e))
        return CommandResult(returncode=COMMAND_NOT_FOUND, stderr=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning("command.timed_out", cmd=display, timeout=timeout)
        return CommandResult(returncode=-1, timed_out=True)

    result = CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace") if stdout else "",
        stderr=stderr.decode(errors="replace") if stderr else "",
    )
    logger.debug(
        "command.completed",
        cmd=display,
        returncode=result.returncode,
        stdout_len=len(result.stdout),
        stderr_len=len(result.stderr),
    )
    return result
