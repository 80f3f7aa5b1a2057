#!/usr/bin/env python3
"""CLI entry point for mesh-adapter.

Noun-action subcommands:
- mesh-adapter manifest apply -f bookinfo.yaml -n demo
- mesh-adapter manifest delete -f bookinfo.yaml -n demo
- mesh-adapter op list
- mesh-adapter op run bookinfo_app -n demo

Nouns:
- manifest: Reconcile a manifest file against the cluster (apply/delete)
- op: Catalog operations (list/run)
"""

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from config import ConfigError, load_config
from events import Event, EventDeliveryError
from kube.locator import LocationError
from kube.reconciler import ReconcileError
from kube.session import ClientSession
from manifest import ManifestParseError
from operations import ApplyRequest, OperationError, OperationRunner, list_operations

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "manifest": "Reconcile a manifest file against the cluster (apply/delete)",
    "op": "Catalog operations (list/run)",
}

DEFAULT_WAIT_TIMEOUT = 600.0

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure logging to stderr so stdout stays parseable."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )


def _add_session_args(parser: argparse.ArgumentParser) -> None:
    """Options shared by every command that talks to a cluster."""
    parser.add_argument(
        '--config',
        type=Path,
        help='Adapter config file (default: $MESH_ADAPTER_CONFIG or '
             '~/.config/mesh-adapter/config.yaml)',
    )
    parser.add_argument(
        '--kubeconfig',
        type=Path,
        help='Path to kubeconfig (default: ~/.kube/config, then in-cluster)',
    )
    parser.add_argument(
        '--context',
        help='kubeconfig context to use',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )


def _open_session(args) -> ClientSession:
    """Load config, apply CLI overrides and connect.

    Raises:
        ConfigError: On invalid config or missing credentials
    """
    config = load_config(args.config)
    if args.kubeconfig:
        config.kubeconfig = args.kubeconfig.expanduser()
    if args.context:
        config.context = args.context
    return ClientSession.from_config(config)


def _read_source(path: str) -> str:
    """Read manifest text from a file, or stdin when path is '-'."""
    if path == '-':
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8')


def manifest_main(action: str, argv: list) -> int:
    """Handle 'manifest apply' and 'manifest delete'."""
    parser = argparse.ArgumentParser(
        prog=f'mesh-adapter manifest {action}',
        description=f'{action.capitalize()} every document of a manifest, in order',
    )
    parser.add_argument(
        '--file', '-f',
        required=True,
        help="Manifest file ('-' for stdin)",
    )
    parser.add_argument(
        '--namespace', '-n',
        default='',
        help='Namespace for documents that do not set one',
    )
    parser.add_argument(
        '--custom',
        action='store_true',
        help='Replace (delete then create) existing objects instead of updating',
    )
    _add_session_args(parser)
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        manifest = _read_source(args.file)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: unable to read {args.file}: {e}", file=sys.stderr)
        return 1

    try:
        session = _open_session(args)
        orchestrator = session.orchestrator()
        touched = orchestrator.apply_change(
            manifest,
            namespace=args.namespace,
            delete=(action == 'delete'),
            custom=args.custom,
        )
    except ManifestParseError as e:
        print(f"Error: invalid manifest: {e}", file=sys.stderr)
        return 1
    except (ConfigError, LocationError, ReconcileError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    done = 'deleted' if action == 'delete' else 'applied'
    for descriptor, name in touched:
        print(f"{descriptor}/{name} {done}")
    return 0


def dispatch_manifest(argv: list) -> int:
    """Dispatch 'manifest' noun to action-specific handler."""
    if not argv or argv[0].startswith('-'):
        print("Usage: mesh-adapter manifest <action> [options]")
        print()
        print("Actions:")
        print("  apply     Create or update every object in a manifest")
        print("  delete    Delete every object in a manifest")
        print()
        print("Run 'mesh-adapter manifest <action> --help' for action-specific options.")
        return 1 if not argv else 0

    action = argv[0]
    if action in ('apply', 'delete'):
        return manifest_main(action, argv[1:])

    print(f"Error: Unknown manifest action '{action}'")
    print("Available actions: apply, delete")
    return 1


def op_list_main(argv: list) -> int:
    """Handle 'op list'."""
    parser = argparse.ArgumentParser(
        prog='mesh-adapter op list',
        description='List supported operations',
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Output as JSON',
    )
    args = parser.parse_args(argv)

    operations = list_operations()
    if args.json:
        print(json.dumps(
            [{'key': key, 'name': name, 'category': category}
             for key, name, category in operations],
            indent=2,
        ))
        return 0

    print("Operations:")
    for key, name, category in operations:
        print(f"  {key:<20} {category:<20} {name}")
    return 0


def _print_event(event: Event, json_output: bool) -> None:
    if json_output:
        print(json.dumps(event.to_dict()), flush=True)
        return
    level = event.event_type.value.upper()
    print(f"[{level}] {event.summary}", flush=True)
    if event.details and event.details != event.summary:
        print(f"        {event.details}", flush=True)


def wait_for_operation(session: ClientSession, operation_id: str,
                       timeout: float, json_output: bool = False) -> Optional[Event]:
    """Stream events until the operation reports its outcome.

    Returns:
        The terminal event, or None if none arrived within timeout
    """
    stop = threading.Event()
    result: list[Event] = []

    def send(event: Event) -> None:
        _print_event(event, json_output)
        if event.operation_id == operation_id:
            result.append(event)
            stop.set()

    timer = threading.Timer(timeout, stop.set)
    timer.daemon = True
    timer.start()
    try:
        session.notifier.stream(send, stop)
    finally:
        timer.cancel()
    return result[0] if result else None


def op_run_main(argv: list) -> int:
    """Handle 'op run'."""
    parser = argparse.ArgumentParser(
        prog='mesh-adapter op run',
        description='Run a catalog operation and wait for its outcome',
    )
    parser.add_argument(
        'key',
        help="Operation key (see 'mesh-adapter op list')",
    )
    parser.add_argument(
        '--namespace', '-n',
        default='default',
        help='Target namespace (default: default)',
    )
    parser.add_argument(
        '--delete',
        action='store_true',
        help='Remove what the operation deploys',
    )
    parser.add_argument(
        '--user',
        default='',
        help='User name substituted into templates',
    )
    parser.add_argument(
        '--body-file',
        help="Manifest for the custom operation ('-' for stdin)",
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=DEFAULT_WAIT_TIMEOUT,
        help=f'Seconds to wait for a background operation (default: {DEFAULT_WAIT_TIMEOUT:.0f})',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Print events as JSON lines',
    )
    _add_session_args(parser)
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    body = ''
    if args.body_file:
        try:
            body = _read_source(args.body_file)
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: unable to read {args.body_file}: {e}", file=sys.stderr)
            return 1

    request = ApplyRequest(
        op_key=args.key,
        namespace=args.namespace,
        delete=args.delete,
        custom_body=body,
        username=args.user,
    )

    try:
        session = _open_session(args)
        runner = OperationRunner(session)
        response = runner.apply_operation(request)
    except (ConfigError, OperationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.debug("Operation failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if response.message:
        print(response.message)
        return 0

    logger.info(f"Operation {response.operation_id} started, waiting for events")
    try:
        event = wait_for_operation(session, response.operation_id,
                                   args.timeout, args.json_output)
    except EventDeliveryError as e:
        session.notifier.drain(timeout=1.0)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if event is None:
        # The operation thread may still publish its outcome
        session.notifier.drain(timeout=1.0)
        print(f"Error: no result for operation {response.operation_id} "
              f"after {args.timeout:.0f}s", file=sys.stderr)
        return 1
    session.notifier.close(timeout=1.0)
    return 1 if event.is_error else 0


def dispatch_op(argv: list) -> int:
    """Dispatch 'op' noun to action-specific handler."""
    if not argv or argv[0].startswith('-'):
        print("Usage: mesh-adapter op <action> [options]")
        print()
        print("Actions:")
        print("  list      List supported operations")
        print("  run       Run an operation and wait for its outcome")
        return 1 if not argv else 0

    action = argv[0]
    if action == 'list':
        return op_list_main(argv[1:])
    if action == 'run':
        return op_run_main(argv[1:])

    print(f"Error: Unknown op action '{action}'")
    print("Available actions: list, run")
    return 1


def print_usage():
    """Print top-level usage showing noun commands."""
    print("Usage: mesh-adapter <noun> <action> [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<12} {desc}")
    print()
    print("Run 'mesh-adapter <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  mesh-adapter manifest apply -f bookinfo.yaml -n demo")
    print("  mesh-adapter op run httpbin_app -n demo")
    print("  mesh-adapter op run custom --body-file filter.yaml -n demo")


def main(argv: Optional[list] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0 if argv else 1

    noun, rest = argv[0], argv[1:]
    if noun == 'manifest':
        return dispatch_manifest(rest)
    if noun == 'op':
        return dispatch_op(rest)

    print(f"Error: Unknown command '{noun}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
