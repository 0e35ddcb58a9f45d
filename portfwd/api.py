import logging
import os
import threading
from datetime import datetime, timezone

import psutil
import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from .engine import ForwardingEngine

logger = logging.getLogger(__name__)


class ShutdownRequest(BaseModel):
    reason: str = "shutdown requested via api"


def create_app(engine: ForwardingEngine) -> FastAPI:
    app = FastAPI(title="portfwd API", version="1.0.0")
    state = engine.state
    shutdown = engine.shutdown

    @app.get("/")
    def root():
        snap = state.snapshot()
        return {
            "service": "portfwd",
            "status": "stopping" if shutdown.is_set() else "ok",
            "running": snap["running"],
            "started_at": snap["started_at"],
            "shutdown_reason": shutdown.reason,
            "rule_count": len(snap["rules"]),
            "active_connections": snap["active_connections"],
        }

    @app.get("/rules")
    def rules():
        return {"rules": state.snapshot()["rules"]}

    @app.get("/connections")
    def connections():
        snap = state.snapshot()
        return {"count": snap["active_connections"], "connections": snap["connections"]}

    @app.get("/system/metrics")
    def system_metrics():
        proc = psutil.Process(os.getpid())
        mem = psutil.virtual_memory()
        return {
            "ts": datetime.now(timezone.utc).isoformat(),
            "pid": proc.pid,
            "threads": proc.num_threads(),
            "rss_mb": round(proc.memory_info().rss / (1024 * 1024), 2),
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory_percent": mem.percent,
            "active_connections": state.snapshot()["active_connections"],
        }

    @app.post("/shutdown")
    def request_shutdown(req: ShutdownRequest | None = None):
        fired = shutdown.fire(req.reason if req else ShutdownRequest().reason)
        return {"ok": True, "fired": fired, "reason": shutdown.reason}

    return app


def start_api_server(engine: ForwardingEngine, host: str, port: int) -> threading.Thread:
    config = uvicorn.Config(create_app(engine), host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)

    def _stop() -> None:
        server.should_exit = True

    engine.shutdown.add_callback(_stop)
    thread = threading.Thread(target=server.run, name="api", daemon=True)
    thread.start()
    logger.info("Control API listening on http://%s:%d", host, port)
    return thread
