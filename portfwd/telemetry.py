import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .rules import Rule


def utc_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def _rule_counters(rule: Rule) -> dict[str, Any]:
    return {
        "local_port": rule.local_port,
        "remote": rule.remote_address,
        "protocol": rule.protocol,
        "listening": False,
        "accepted": 0,
        "accept_errors": 0,
        "dial_failures": 0,
        "completed": 0,
        "bytes_in": 0,
        "bytes_out": 0,
    }


@dataclass
class ForwarderState:
    running: bool = False
    started_at: str | None = None
    shutdown_reason: str | None = None
    rules: dict[int, dict[str, Any]] = field(default_factory=dict)
    connections: dict[str, dict[str, Any]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def register_rule(self, rule: Rule) -> None:
        with self.lock:
            self.rules.setdefault(rule.local_port, _rule_counters(rule))

    def mark_running(self) -> None:
        with self.lock:
            self.running = True
            self.started_at = utc_ts()

    def mark_stopped(self, reason: str | None) -> None:
        with self.lock:
            self.running = False
            self.shutdown_reason = reason

    def set_listening(self, port: int, listening: bool) -> None:
        with self.lock:
            if port in self.rules:
                self.rules[port]["listening"] = listening

    def record_accept_error(self, port: int) -> None:
        with self.lock:
            if port in self.rules:
                self.rules[port]["accept_errors"] += 1

    def record_dial_failure(self, port: int) -> None:
        with self.lock:
            if port in self.rules:
                self.rules[port]["dial_failures"] += 1

    def open_connection(self, conn_id: str, port: int, client: str) -> None:
        with self.lock:
            if port in self.rules:
                self.rules[port]["accepted"] += 1
            self.connections[conn_id] = {
                "id": conn_id,
                "local_port": port,
                "client": client,
                "opened_at": utc_ts(),
            }

    def close_connection(self, conn_id: str, bytes_in: int = 0, bytes_out: int = 0) -> None:
        with self.lock:
            record = self.connections.pop(conn_id, None)
            if record is None:
                return
            counters = self.rules.get(record["local_port"])
            if counters is not None:
                counters["completed"] += 1
                counters["bytes_in"] += bytes_in
                counters["bytes_out"] += bytes_out

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            return {
                "running": self.running,
                "started_at": self.started_at,
                "shutdown_reason": self.shutdown_reason,
                "rules": [dict(v) for _, v in sorted(self.rules.items())],
                "connections": [dict(v) for v in self.connections.values()],
                "active_connections": len(self.connections),
            }
