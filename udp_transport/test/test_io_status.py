import errno
import unittest

from udp_transport.io_status import ErrorClassifier, IOStatus


class TestErrorClassifier(unittest.TestCase):
    """Recoverable versus fatal classification"""

    def setUp(self):
        self.classifier = ErrorClassifier()

    def test_recoverable_errors(self):
        for code in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EINTR):
            with self.subTest(code=errno.errorcode[code]):
                self.assertIs(self.classifier.classify(OSError(code, "transient")), IOStatus.RECOVERABLE)

    def test_fatal_errors(self):
        for code in (errno.EBADF, errno.EPIPE, errno.EIO, errno.ECONNREFUSED, errno.ENETUNREACH):
            with self.subTest(code=errno.errorcode[code]):
                self.assertIs(self.classifier.classify(OSError(code, "fatal")), IOStatus.FATAL)

    def test_error_without_errno_is_fatal(self):
        self.assertIs(self.classifier.classify(OSError("no errno")), IOStatus.FATAL)

    def test_read_results(self):
        self.assertIs(self.classifier.classify_read(0), IOStatus.CLOSED)
        self.assertIs(self.classifier.classify_read(1), IOStatus.READY)
        self.assertIs(self.classifier.classify_read(4096), IOStatus.READY)

    def test_interrupted(self):
        self.assertTrue(ErrorClassifier.is_interrupted(InterruptedError(errno.EINTR, "interrupted")))
        self.assertFalse(ErrorClassifier.is_interrupted(BlockingIOError(errno.EAGAIN, "again")))
