"""External commands run against the project (composer)."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from laraguard.errors import UpstreamError

logger = logging.getLogger(__name__)

# Timeout in seconds for one external command; composer resolves the full graph
_COMMAND_TIMEOUT = 120


class CommandRunner(Protocol):
    def run(self, args: list[str], cwd: Path) -> str:
        """Run *args* in *cwd* and return the combined output; failures raise UpstreamError."""
        ...


class SubprocessRunner:
    """Runs commands as child processes."""

    def __init__(self, timeout: float = _COMMAND_TIMEOUT) -> None:
        self.timeout = timeout

    def run(self, args: list[str], cwd: Path) -> str:
        logger.debug("Running %s in %s", " ".join(args), cwd)
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise UpstreamError(f"{args[0]} executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise UpstreamError(f"{args[0]} timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise UpstreamError(f"{args[0]} could not be started: {e}") from e
        output = (proc.stdout or "") + (proc.stderr or "")
        if proc.returncode != 0:
            detail = output.strip().splitlines()[-1] if output.strip() else "no output"
            raise UpstreamError(f"{args[0]} exited with code {proc.returncode}: {detail}")
        return output
