"""Command execution against the local host."""

import getpass
import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional, Sequence

from . import LOGGER_NAME

OPERATION_TIMEOUT: int = 300  # 5 minutes default timeout for operations

logger = logging.getLogger(LOGGER_NAME)


class CommandRunner:
    """
    Runs external commands with logging and uniform error handling.

    Commands run as the invoking user unless ``user`` names another account,
    in which case they are wrapped with ``sudo -u <user> -H``.
    """

    def __init__(self, timeout: int = OPERATION_TIMEOUT):
        self.timeout = timeout

    def run(
        self,
        cmd: Sequence[str],
        check: bool = True,
        capture_output: bool = True,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        user: Optional[str] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Run a system command and return the completed process."""
        full_cmd = self.wrap_user(list(cmd), user)
        logger.debug(f"Running command: {' '.join(full_cmd)}")

        run_env = os.environ.copy()
        run_env.setdefault("DEBIAN_FRONTEND", "noninteractive")
        if env:
            run_env.update(env)

        try:
            result = subprocess.run(
                full_cmd,
                env=run_env,
                check=False,
                text=True,
                capture_output=capture_output,
                timeout=timeout or self.timeout,
                input=input,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {timeout or self.timeout} seconds: {' '.join(full_cmd)}")
            raise

        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip()
            if stderr:
                logger.debug(f"Stderr: {stderr}")
            raise subprocess.CalledProcessError(
                result.returncode, full_cmd, output=result.stdout, stderr=result.stderr
            )
        return result

    def command_exists(self, name: str) -> bool:
        """Check if a command exists in the system path."""
        return shutil.which(name) is not None

    @staticmethod
    def wrap_user(cmd: List[str], user: Optional[str]) -> List[str]:
        if user is None or user == getpass.getuser():
            return cmd
        return ["sudo", "-u", user, "-H", "--"] + cmd


def describe_failure(e: subprocess.CalledProcessError) -> str:
    """One-line description of a failed command, preferring its stderr."""
    detail = (e.stderr or e.output or "").strip().splitlines()
    cmd = " ".join(e.cmd) if isinstance(e.cmd, (list, tuple)) else str(e.cmd)
    if detail:
        return f"{cmd} exited with {e.returncode}: {detail[-1]}"
    return f"{cmd} exited with {e.returncode}"
