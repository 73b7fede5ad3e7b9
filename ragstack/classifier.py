"""ErrorClassifier — separates expected noise from real faults."""

from __future__ import annotations

import errno
import logging

from ragstack.errors import ProcessFault

logger = logging.getLogger(__name__)

# Executable the compose tooling falls back to when nothing is configured.
KNOWN_DEFAULT_EXECUTABLE = "docker"


class ErrorClassifier:
    """Decides whether a fault is benign.

    Benign faults are:
    - "executable not found" while the configured executable is not the
      known default;
    - faults whose exit code is exactly 0.
    """

    def __init__(self, executable: str) -> None:
        self.executable = executable

    def is_benign(self, fault: BaseException) -> bool:
        if getattr(fault, "exit_code", None) == 0:
            return True
        if self._is_missing_executable(fault):
            return self.executable != KNOWN_DEFAULT_EXECUTABLE
        return False

    def report(self, fault: BaseException, message: str) -> bool:
        """Log a real fault with its traceback. Returns True if it was logged."""
        if self.is_benign(fault):
            return False
        logger.error(f"{message}: {fault}", exc_info=fault)
        return True

    def _is_missing_executable(self, fault: BaseException) -> bool:
        if isinstance(fault, ProcessFault):
            return fault.missing_executable
        if isinstance(fault, FileNotFoundError) and fault.errno == errno.ENOENT:
            return fault.filename in (self.executable, KNOWN_DEFAULT_EXECUTABLE)
        return False
