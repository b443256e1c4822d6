"""Command-line monitor for a Snapcast server.

Usage:
    python -m snapcast_control [host] [port] [--discover-timeout S] [-v]
"""

import argparse
import asyncio
import logging
import sys

from snapcast_control.api.client import SnapcastClient
from snapcast_control.api.connection import ConnectionStatus, ReconnectPolicy
from snapcast_control.api.protocol import JsonRpcNotification, JsonRpcResult, ValidMessage
from snapcast_control.core.config import ConfigManager
from snapcast_control.core.discovery import ServerDiscovery
from snapcast_control.errors import ClientError, ConnectError, SendError
from snapcast_control.models.server import DEFAULT_CONTROL_PORT, Server

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="snapcast_control",
        description="Monitor a Snapcast server over its JSON-RPC control API",
    )
    parser.add_argument("host", nargs="?", default=None, help="server hostname or IP")
    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=DEFAULT_CONTROL_PORT,
        help=f"TCP control port (default: {DEFAULT_CONTROL_PORT})",
    )
    parser.add_argument(
        "--discover-timeout",
        type=float,
        default=5.0,
        metavar="S",
        help="seconds to search via mDNS when no host is known (default: 5)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def resolve_server(
    host: str | None,
    port: int,
    config: ConfigManager,
    discover_timeout: float,
) -> Server | None:
    """Pick the server from the command line, saved settings, or mDNS.

    Returns:
        The server to connect to, or None if none could be found.
    """
    if host:
        return Server(name=host, host=host, port=port)

    saved = config.get_last_server()
    if saved:
        logger.info("Using saved server %s", saved.address)
        return saved

    logger.info("Searching for Snapcast servers via mDNS...")
    found = ServerDiscovery.discover_one(timeout=discover_timeout)
    if found is None:
        logger.warning("No Snapcast servers found via mDNS")
        return None
    logger.info("Found server: %s at %s:%d", found.display_name, found.host, found.port)
    return found.to_server()


def format_message(message: ValidMessage | ClientError) -> str:
    """Return a one-line description of a received message."""
    if isinstance(message, ClientError):
        return f"error    {message.kind.value}: {message}"
    if isinstance(message, JsonRpcNotification):
        return f"notify   {message.method} {message.params}"
    if isinstance(message, JsonRpcResult) and not message.is_success:
        return f"failed   {message.method} {message.error}"
    return f"result   {message.method}"


async def monitor(server: Server, policy: ReconnectPolicy, timeout: float) -> int:
    """Print status transitions and messages until interrupted.

    Returns:
        Exit code.
    """
    client = SnapcastClient(server.host, server.port, policy)
    refreshes: set[asyncio.Task[None]] = set()

    async def refresh() -> None:
        try:
            await client.server_get_status()
        except SendError as e:
            logger.warning("Status request failed: %s", e)

    def on_status(status: ConnectionStatus) -> None:
        print(f"status   {status.value}")
        if status is ConnectionStatus.CONNECTED:
            task = asyncio.get_running_loop().create_task(refresh())
            refreshes.add(task)
            task.add_done_callback(refreshes.discard)

    client.on_status_change(on_status)
    try:
        await client.open(timeout)
    except ConnectError as e:
        logger.error("%s", e)
        return 1

    try:
        while (batch := await client.recv()) is not None:
            for message in batch:
                print(format_message(message))
            state = batch.state
            print(
                f"state    {state.group_count} groups, {state.client_count} clients, "
                f"{state.source_count} streams"
            )
    finally:
        await client.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the command-line monitor.

    Returns:
        Exit code (0 for success).
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ConfigManager()
    server = resolve_server(args.host, args.port, config, args.discover_timeout)
    if server is None:
        return 1
    config.set_last_server(server)

    try:
        return asyncio.run(
            monitor(server, config.get_reconnect_policy(), config.get_open_timeout())
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
