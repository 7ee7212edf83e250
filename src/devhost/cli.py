"""CLI entry point for devhost."""

import argparse
import json
import sys
import urllib.error

from .config import HostConfig, config_to_yaml, load_config, merge_cli_args, parse_service_arg
from .errors import DevHostClientError
from .host import HOTLOAD_SERVICE, SHUTDOWN_SERVICE, DevHost
from .server import DevHostClient


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    """Add config flags shared by `start` and `config`."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--host", type=str, help="Address to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port to bind, 0 for any free port (default: 63578)")
    parser.add_argument(
        "--quiet", action="store_const", const=False, dest="output_on_listen",
        help="Do not print the 'Server listening at' line",
    )
    parser.add_argument(
        "--log-requests", action="store_const", const=True, dest="log_requests",
        help="Echo each HTTP request to stderr",
    )
    parser.add_argument(
        "--service", action="append", dest="services", metavar="NAME=FILE",
        help="Hot-load a service before listening (repeatable)",
    )


def _build_config(args) -> HostConfig:
    """Build a HostConfig from a config file + CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = HostConfig()
    try:
        merge_cli_args(config, args)
    except ValueError as e:
        print(f"Error: --service {e}", file=sys.stderr)
        sys.exit(2)
    return config


def _preload_services(host: DevHost, config: HostConfig) -> None:
    """Hot-load the configured services through the host's own __hotload service."""
    if not config.services:
        return
    outcome = {}

    def done(err, result):
        outcome["error"] = err

    host.call_service(HOTLOAD_SERVICE, {"services": [s.to_dict() for s in config.services]}, done)
    if outcome.get("error") is not None:
        print(f"Error: {outcome['error']}", file=sys.stderr)
        sys.exit(1)


def cmd_start(args) -> None:
    """Start a host in the foreground and serve until __shutdown."""
    config = _build_config(args)
    host = DevHost(config)
    _preload_services(host, config)

    try:
        host.listen()
    except OSError as e:
        print(f"Error: cannot listen on {config.host}:{config.port}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        host.wait()
    except KeyboardInterrupt:
        host.stop_listening()


def cmd_config(args) -> None:
    """Print the effective configuration as YAML."""
    config = _build_config(args)
    sys.stdout.write(config_to_yaml(config))


# ---------------------------------------------------------------------------
# client subcommands
# ---------------------------------------------------------------------------

def _run_client(args, service: str, payload) -> None:
    client = DevHostClient(url=args.url, timeout=args.timeout)
    try:
        result = client.call(service, payload)
    except DevHostClientError as e:
        print(e.body, file=sys.stderr)
        sys.exit(1)
    except (urllib.error.URLError, OSError) as e:
        print(f"Error: cannot reach {args.url}: {e}", file=sys.stderr)
        sys.exit(1)

    if isinstance(result, str):
        print(result)
    elif isinstance(result, bytes):
        sys.stdout.buffer.write(result)
    else:
        print(json.dumps(result, indent=2))


def cmd_call(args) -> None:
    try:
        payload = json.loads(args.payload) if args.payload else {}
    except ValueError as e:
        print(f"Error: payload is not valid JSON: {e}", file=sys.stderr)
        sys.exit(2)
    _run_client(args, args.service, payload)


def cmd_hotload(args) -> None:
    try:
        refs = [parse_service_arg(value) for value in args.services]
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    _run_client(args, HOTLOAD_SERVICE, {"services": [r.to_dict() for r in refs]})


def cmd_shutdown(args) -> None:
    _run_client(args, SHUTDOWN_SERVICE, {})


def _add_client_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--url", type=str, default="http://127.0.0.1:63578/",
        help="Base URL of the running host (default: http://127.0.0.1:63578/)",
    )
    parser.add_argument(
        "--timeout", type=float, default=30,
        help="Seconds to wait for a response (default: 30)",
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="devhost",
        description="devhost: many named services behind one local HTTP port",
    )
    subparsers = parser.add_subparsers(dest="command")

    # start
    start_parser = subparsers.add_parser("start", help="Run a service host in the foreground")
    _add_config_args(start_parser)
    start_parser.set_defaults(func=cmd_start)

    # config
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    _add_config_args(config_parser)
    config_parser.set_defaults(func=cmd_config)

    # call
    call_parser = subparsers.add_parser("call", help="Call a service on a running host")
    _add_client_args(call_parser)
    call_parser.add_argument("service", type=str, help="Service name (sent as X-Service)")
    call_parser.add_argument("payload", type=str, nargs="?", default=None, help="JSON request body")
    call_parser.set_defaults(func=cmd_call)

    # hotload
    hotload_parser = subparsers.add_parser("hotload", help="Register services on a running host")
    _add_client_args(hotload_parser)
    hotload_parser.add_argument("services", nargs="+", metavar="NAME=FILE", help="Services to load")
    hotload_parser.set_defaults(func=cmd_hotload)

    # shutdown
    shutdown_parser = subparsers.add_parser("shutdown", help="Close a running host's listener")
    _add_client_args(shutdown_parser)
    shutdown_parser.set_defaults(func=cmd_shutdown)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)
