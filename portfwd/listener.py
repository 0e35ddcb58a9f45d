import logging
import os
import socket
import threading

from .handler import ConnectionHandler, close_socket
from .relay import DEFAULT_BUFSIZE
from .rules import Rule
from .shutdown import ShutdownSignal
from .telemetry import ForwarderState

logger = logging.getLogger(__name__)


class BindError(RuntimeError):
    def __init__(self, rule: Rule, cause: OSError):
        super().__init__(f"failed to listen on :{rule.local_port}: {cause}")
        self.rule = rule
        self.cause = cause


class RuleListener:
    def __init__(
        self,
        rule: Rule,
        shutdown: ShutdownSignal,
        state: ForwarderState | None = None,
        bind_host: str = "0.0.0.0",
        backlog: int = 128,
        bufsize: int = DEFAULT_BUFSIZE,
    ):
        self.rule = rule
        self.shutdown = shutdown
        self.state = state
        self.bind_host = bind_host
        self.backlog = backlog
        self.bufsize = bufsize
        self.sock: socket.socket | None = None
        self.thread: threading.Thread | None = None
        self._closed = threading.Event()

    @property
    def port(self) -> int | None:
        if self.sock is None or self.sock.fileno() == -1:
            return None
        return self.sock.getsockname()[1]

    def bind(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.bind_host, self.rule.local_port))
            sock.listen(self.backlog)
        except OSError as exc:
            sock.close()
            raise BindError(self.rule, exc) from exc
        self.sock = sock
        if self.state:
            self.state.set_listening(self.rule.local_port, True)
        self.shutdown.add_callback(self.close)
        logger.info(
            "PID %d: Listening on %s:%d and forwarding to %s",
            os.getpid(),
            self.bind_host,
            self.rule.local_port,
            self.rule.remote_address,
        )

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        close_socket(self.sock)
        if self.state:
            self.state.set_listening(self.rule.local_port, False)

    def serve(self) -> None:
        if self.sock is None:
            raise RuntimeError("listener is not bound")
        try:
            while not self.shutdown.is_set():
                try:
                    client, addr = self.sock.accept()
                except OSError as exc:
                    if self.shutdown.is_set():
                        logger.info("Listener on :%d stopped by shutdown", self.rule.local_port)
                        return
                    if self._closed.is_set() or self.sock.fileno() == -1:
                        logger.error("Listener on :%d closed unexpectedly: %s", self.rule.local_port, exc)
                        return
                    logger.error("Failed to accept connection on :%d: %s", self.rule.local_port, exc)
                    if self.state:
                        self.state.record_accept_error(self.rule.local_port)
                    continue
                logger.info("Accepted connection from %s:%s on :%d", addr[0], addr[1], self.rule.local_port)
                ConnectionHandler(client, addr, self.rule, self.shutdown, self.state, self.bufsize).start()
            logger.info("Listener on :%d stopped by shutdown", self.rule.local_port)
        finally:
            self.shutdown.remove_callback(self.close)
            self.close()

    def run(self) -> None:
        self.bind()
        self.serve()

    def start(self) -> threading.Thread:
        self.thread = threading.Thread(target=self.serve, name=f"listener :{self.rule.local_port}", daemon=True)
        self.thread.start()
        return self.thread
