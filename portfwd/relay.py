import errno
import logging
import socket
import threading

from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

DEFAULT_BUFSIZE = 32 * 1024

# Raised when the socket was torn down locally or the peer went away first.
CLOSED_ERRNOS = {errno.EBADF, errno.ENOTCONN, errno.ESHUTDOWN, errno.EPIPE}


def is_closed_error(exc: OSError, *socks: socket.socket) -> bool:
    if exc.errno in CLOSED_ERRNOS:
        return True
    return any(s.fileno() == -1 for s in socks)


class Relay:
    """Copies bytes from ``src`` to ``dst`` until EOF or an I/O error.

    ``done`` is set when the copy ends, whatever the outcome.
    """

    def __init__(
        self,
        src: socket.socket,
        dst: socket.socket,
        done: threading.Event,
        shutdown: ShutdownSignal,
        label: str = "",
        bufsize: int = DEFAULT_BUFSIZE,
    ):
        self.src = src
        self.dst = dst
        self.done = done
        self.shutdown = shutdown
        self.label = label
        self.bufsize = bufsize
        self.bytes_copied = 0
        self.error: OSError | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> threading.Thread:
        self.thread = threading.Thread(target=self.run, name=f"relay {self.label}", daemon=True)
        self.thread.start()
        return self.thread

    def run(self) -> None:
        logger.debug("Starting data copy %s", self.label)
        try:
            while True:
                chunk = self.src.recv(self.bufsize)
                if not chunk:
                    break
                self.dst.sendall(chunk)
                self.bytes_copied += len(chunk)
        except OSError as exc:
            self.error = exc
            if self.shutdown.is_set():
                logger.debug("Data copy %s stopped by shutdown", self.label)
            elif is_closed_error(exc, self.src, self.dst):
                logger.debug("Connection closed during data copy %s: %s", self.label, exc)
            else:
                logger.warning("Error copying data %s: %s", self.label, exc)
        finally:
            logger.debug("Completed data copy %s (%d bytes)", self.label, self.bytes_copied)
            self.done.set()

    def join(self, timeout: float | None = None) -> None:
        if self.thread is not None:
            self.thread.join(timeout)
