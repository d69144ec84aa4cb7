"""Command execution for pool and dataset operations."""
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

from strata.core.errors import CommandError
from strata.core.logger import get_logger

logger = get_logger(__name__)


class Executor(ABC):
    """Runs one pool/dataset command line and returns its raw output.

    Implementations raise CommandError when the command fails.
    """

    @abstractmethod
    def execute(self, command: str) -> bytes:
        ...


class ShellExecutor(Executor):
    """Executor backed by the zpool/zfs binaries on the local node.

    In mock mode commands are only logged and answer with empty output, so
    the pool probes report no pool and the create path is shown in full.
    """

    def __init__(self, mock: bool = False, timeout: Optional[float] = None):
        self.mock = mock or os.environ.get("STRATA_MOCK", "").lower() in ("1", "true")
        self.timeout = timeout

    def execute(self, command: str) -> bytes:
        if self.mock:
            logger.info(f"MOCK: Would run {command}")
            return b""

        logger.debug(f"Running {command}")
        try:
            result = subprocess.run(
                shlex.split(command),
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            output = (e.stderr or b"") + (e.stdout or b"")
            raise CommandError(command, e.returncode, output.decode(errors="replace")) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(command, -1, message=f"command '{command}' timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise CommandError(command, 127, message=f"command '{command}' not found") from e

        return result.stdout
