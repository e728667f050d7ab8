"""
meshd — Synapse mesh daemon CLI

Usage:
    python -m meshd --port 8787 --data-dir ./mesh-data --provider claude

Then attach a terminal:
    python -m meshd.attach alice --url ws://127.0.0.1:8787

Or drive it over HTTP:
    curl localhost:8787/mesh/nodes
    curl -X PUT localhost:8787/terminal/alice/config -d '{"persona": "coder"}'
"""

import argparse
import logging
import sys

from aiohttp import web
from dotenv import load_dotenv

from llmgen.providers import list_providers
from .config import DaemonConfig
from .server import create_app


def parse_args(argv=None, defaults: DaemonConfig = None) -> DaemonConfig:
    """Merge command-line flags over environment settings"""
    defaults = defaults or DaemonConfig()
    parser = argparse.ArgumentParser(
        description="Synapse mesh daemon: terminal agents over HTTP and WebSocket"
    )
    parser.add_argument(
        '--host', default=defaults.host,
        help=f'Host to bind to (default: {defaults.host})'
    )
    parser.add_argument(
        '--port', type=int, default=defaults.port,
        help=f'Port to listen on (default: {defaults.port})'
    )
    parser.add_argument(
        '--prefix', default=defaults.prefix,
        help='Route prefix, e.g. /api'
    )
    parser.add_argument(
        '--data-dir', default=defaults.data_dir,
        help='Directory for persisted node state (default: in-memory)'
    )
    parser.add_argument(
        '--provider', '-p', choices=list_providers(), default=defaults.provider,
        help='Text generation provider for the fallback agent'
    )
    parser.add_argument(
        '--model', default=defaults.model,
        help='Provider model (default: provider default)'
    )
    parser.add_argument(
        '--relay-url', default=defaults.relay_url,
        help='Send relay calls to this daemon URL instead of in-process'
    )
    parser.add_argument(
        '--relay-timeout', type=float, default=defaults.relay_timeout,
        help=f'Relay round-trip timeout in seconds (default: {defaults.relay_timeout:g})'
    )
    parser.add_argument(
        '--generator-timeout', type=float, default=defaults.generator_timeout,
        help=f'Generator timeout in seconds (default: {defaults.generator_timeout:g})'
    )
    parser.add_argument(
        '--history', type=int, default=defaults.history_limit,
        help=f'Conversation turns kept per node (default: {defaults.history_limit})'
    )
    parser.add_argument(
        '--verbose', '-v', action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--debug', '-d', action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose:
        level = logging.INFO
    if args.debug:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    return DaemonConfig(
        host=args.host,
        port=args.port,
        prefix=args.prefix,
        data_dir=args.data_dir,
        provider=args.provider,
        model=args.model,
        relay_url=args.relay_url,
        relay_timeout=args.relay_timeout,
        generator_timeout=args.generator_timeout,
        history_limit=args.history,
    )


def main(argv=None):
    load_dotenv()

    try:
        config = parse_args(argv, DaemonConfig.from_env())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    mesh = config.build_mesh()
    app = create_app(mesh, prefix=config.prefix)

    print("meshd — Synapse mesh daemon")
    print(f"  Listening: {config.host}:{config.port}{config.prefix or ''}")
    print(f"  Storage:   {config.data_dir or 'in-memory'}")
    print(f"  Provider:  {config.provider or '(none, fallback disabled)'}")
    if config.relay_url:
        print(f"  Relay via: {config.relay_url}")
    print(f"  Attach:    python -m meshd.attach <node> --url ws://127.0.0.1:{config.port}{config.prefix or ''}")
    print()

    web.run_app(app, host=config.host, port=config.port, print=None)


if __name__ == '__main__':
    main()
