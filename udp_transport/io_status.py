"""
Classification of I/O outcomes for the relay loop.

Both the stream descriptor and the UDP socket go through the same
classifier, so the retry/fatal decision is made in one place.
"""

import errno
import logging
from enum import Enum


class IOStatus(Enum):
    """Outcome of a single read, write, send or receive attempt."""
    RECOVERABLE = "recoverable"  # would block or interrupted, retry later
    READY = "ready"  # bytes were transferred
    FATAL = "fatal"
    CLOSED = "closed"  # local stream reached end of file


class ErrorClassifier:
    """
    Maps OS-level results to IOStatus.

    Recoverable errors:
    - EAGAIN / EWOULDBLOCK: descriptor not ready
    - EINTR: call interrupted by a signal
    """

    RECOVERABLE_ERRNOS = frozenset({errno.EAGAIN, errno.EWOULDBLOCK, errno.EINTR})

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def classify(self, error: OSError) -> IOStatus:
        """
        Classify an OSError raised by a descriptor operation.

        Args:
            error: Exception raised by os.read/os.write or a socket call

        Returns:
            IOStatus.RECOVERABLE or IOStatus.FATAL
        """
        if error.errno in self.RECOVERABLE_ERRNOS:
            self.logger.debug(f"Recoverable I/O condition: {errno.errorcode.get(error.errno, error.errno)}")
            return IOStatus.RECOVERABLE

        return IOStatus.FATAL

    def classify_read(self, nbytes: int) -> IOStatus:
        """Classify the byte count returned by a successful stream read."""
        if nbytes == 0:
            return IOStatus.CLOSED
        return IOStatus.READY

    @staticmethod
    def is_interrupted(error: OSError) -> bool:
        return error.errno == errno.EINTR
