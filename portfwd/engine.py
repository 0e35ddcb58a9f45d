import logging
import time
from typing import Iterable

from .listener import BindError, RuleListener
from .relay import DEFAULT_BUFSIZE
from .rules import Rule
from .shutdown import ShutdownSignal
from .telemetry import ForwarderState

logger = logging.getLogger(__name__)


class ForwardingEngine:
    """Runs one RuleListener per rule until the shutdown signal fires.

    A bind failure on any rule is fatal for the whole engine.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        shutdown: ShutdownSignal | None = None,
        state: ForwarderState | None = None,
        bind_host: str = "0.0.0.0",
        bufsize: int = DEFAULT_BUFSIZE,
    ):
        self.rules = list(rules)
        self.shutdown = shutdown or ShutdownSignal()
        self.state = state or ForwarderState()
        self.bind_host = bind_host
        self.bufsize = bufsize
        self.listeners: list[RuleListener] = []

    @property
    def ports(self) -> list[int]:
        return [listener.port for listener in self.listeners if listener.port is not None]

    def start(self) -> None:
        for rule in self.rules:
            self.state.register_rule(rule)
        for rule in self.rules:
            listener = RuleListener(rule, self.shutdown, self.state, self.bind_host, bufsize=self.bufsize)
            try:
                listener.bind()
            except BindError as exc:
                logger.critical("%s", exc)
                for bound in self.listeners:
                    bound.close()
                self.shutdown.fire(str(exc))
                self.state.mark_stopped(str(exc))
                raise
            self.listeners.append(listener)

        self.state.mark_running()
        for listener in self.listeners:
            listener.start()
        logger.info("Forwarding engine started with %d rule(s)", len(self.listeners))

    def wait(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        for listener in self.listeners:
            if listener.thread is None:
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            listener.thread.join(remaining)
            if listener.thread.is_alive():
                return False
        self.state.mark_stopped(self.shutdown.reason)
        logger.info("Forwarding engine stopped")
        return True

    def run(self) -> None:
        self.start()
        self.wait()

    def stop(self, reason: str = "stop requested") -> None:
        self.shutdown.fire(reason)
