import logging
import socket
import threading
import uuid

from .relay import DEFAULT_BUFSIZE, Relay
from .rules import Rule
from .shutdown import ShutdownSignal
from .telemetry import ForwarderState

logger = logging.getLogger(__name__)

RELAY_JOIN_TIMEOUT = 2.0


def close_socket(sock: socket.socket | None) -> None:
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    sock.close()


def format_addr(addr) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return str(addr)


class ConnectionHandler:
    """Owns one accepted client and its outbound connection."""

    def __init__(
        self,
        client: socket.socket,
        client_addr,
        rule: Rule,
        shutdown: ShutdownSignal,
        state: ForwarderState | None = None,
        bufsize: int = DEFAULT_BUFSIZE,
    ):
        self.client = client
        self.client_addr = format_addr(client_addr)
        self.rule = rule
        self.shutdown = shutdown
        self.state = state
        self.bufsize = bufsize
        self.conn_id = str(uuid.uuid4())
        self.remote: socket.socket | None = None
        self._close_lock = threading.Lock()
        self._closed = False

    def handle(self) -> None:
        if self.state:
            self.state.open_connection(self.conn_id, self.rule.local_port, self.client_addr)
        relays: list[Relay] = []
        done = threading.Event()
        try:
            logger.info("Handling connection from %s to %s", self.client_addr, self.rule.remote_address)
            try:
                self.remote = socket.create_connection((self.rule.remote_host, self.rule.remote_port))
            except OSError as exc:
                logger.warning("Failed to connect to destination %s: %s", self.rule.remote_address, exc)
                if self.state:
                    self.state.record_dial_failure(self.rule.local_port)
                return

            self.shutdown.add_callback(done.set)
            relays = [
                Relay(self.client, self.remote, done, self.shutdown, f"{self.client_addr} -> {self.rule.remote_address}", self.bufsize),
                Relay(self.remote, self.client, done, self.shutdown, f"{self.rule.remote_address} -> {self.client_addr}", self.bufsize),
            ]
            for relay in relays:
                relay.start()

            done.wait()
            if self.shutdown.is_set():
                logger.info("Shutdown requested, closing connection from %s", self.client_addr)
            else:
                logger.info("Data transfer completed, closing connection from %s", self.client_addr)
        finally:
            self.shutdown.remove_callback(done.set)
            self.close()
            for relay in relays:
                relay.join(RELAY_JOIN_TIMEOUT)
            if self.state:
                bytes_in = relays[0].bytes_copied if relays else 0
                bytes_out = relays[1].bytes_copied if relays else 0
                self.state.close_connection(self.conn_id, bytes_in, bytes_out)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        close_socket(self.remote)
        close_socket(self.client)

    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.handle, name=f"conn {self.client_addr}", daemon=True)
        thread.start()
        return thread
