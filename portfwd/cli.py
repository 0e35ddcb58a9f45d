import argparse
import json
import logging
import signal
import sys
import threading

import requests

from .config import ConfigError, get_settings, load_config
from .engine import ForwardingEngine
from .listener import BindError
from .shutdown import ShutdownSignal

logger = logging.getLogger("portfwd")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (pid %(process)d): %(message)s"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BIND = 2


def install_signal_handlers(shutdown: ShutdownSignal) -> None:
    # Handlers run on the main thread, which may be holding the signal's lock.
    def _handle(signum, _frame) -> None:
        reason = f"received signal {signal.Signals(signum).name}"
        threading.Thread(target=shutdown.fire, args=(reason,), name="shutdown", daemon=True).start()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle)


def cmd_run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("Failed to read config file: %s", exc)
        return EXIT_ERROR
    rules = config.rules()
    if not rules:
        logger.warning("No port_forwards configured in %s", args.config)

    shutdown = ShutdownSignal()
    engine = ForwardingEngine(rules, shutdown=shutdown, bind_host=args.bind_host)
    install_signal_handlers(shutdown)
    try:
        engine.start()
    except BindError:
        return EXIT_BIND

    if args.api_port is not None:
        from .api import start_api_server

        start_api_server(engine, args.api_host, args.api_port)

    # Short joins keep the main thread responsive to signals.
    while not engine.wait(timeout=0.5):
        pass
    return EXIT_OK


def cmd_status(args: argparse.Namespace) -> int:
    base = args.api.rstrip("/")
    try:
        status = requests.get(f"{base}/", timeout=10).json()
        rules = requests.get(f"{base}/rules", timeout=10).json()
    except requests.RequestException as exc:
        print(f"error: failed to query {base}: {exc}", file=sys.stderr)
        return EXIT_ERROR
    print(json.dumps({"status": status, **rules}, indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="portfwd", description="Multi-rule TCP port forwarder")
    parser.add_argument("--log-level", default=settings.log_level)
    # bare invocation runs the forwarder with default settings
    parser.set_defaults(
        func=cmd_run,
        config=str(settings.config_path),
        bind_host=settings.bind_host,
        api_host=settings.api_host,
        api_port=settings.api_port,
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="forward the configured ports until interrupted")
    run.add_argument("--config", default=str(settings.config_path))
    run.add_argument("--bind-host", default=settings.bind_host)
    run.add_argument("--api-host", default=settings.api_host)
    run.add_argument("--api-port", type=int, default=settings.api_port)
    run.set_defaults(func=cmd_run)

    status = sub.add_parser("status", help="query a running forwarder's control api")
    default_api = f"http://{settings.api_host}:{settings.api_port or 8000}"
    status.add_argument("--api", default=default_api)
    status.set_defaults(func=cmd_status)
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
