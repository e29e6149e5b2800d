"""
Launcher for the watchsync client.

Connects to a room coordinator and keeps the local player in lock-step with
the room until interrupted.
"""

import argparse
import logging
import os
import signal
import sys

from .config import BACKENDS, load_client_config
from .identity import IdentityStore
from .runtime.sync_runtime import SyncRuntime

logger = logging.getLogger(__name__)


def launch_sync_client(config, debug=False):
    """
    Run the sync client until interrupted.

    Parameters
    ----------
    config : ClientConfig
        Resolved client configuration (env plus CLI overrides)
    debug : bool
        Enable debug logging
    """
    if os.getenv('WATCHSYNC_DEBUG', '').lower() in ('1', 'true', 'yes'):
        debug = True
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s'
    )

    identity = IdentityStore(config.identity_path)
    if config.owner_auth:
        identity.remember_owner_auth(config.owner_auth)

    runtime = SyncRuntime(config, identity=identity)

    def _on_signal(signum, _frame):
        logger.info("Signal %s received; stopping", signum)
        runtime.stop()

    signal.signal(signal.SIGINT, _on_signal)
    try:
        signal.signal(signal.SIGTERM, _on_signal)
    except (AttributeError, ValueError):
        logger.debug("launcher: SIGTERM handler unavailable", exc_info=True)

    logger.info("Joining room %s at %s", config.room_id, config.server_url)
    runtime.run()
    logger.info("Client closed")


def main(argv=None):
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description='watchsync watch-party client'
    )

    parser.add_argument(
        '--server',
        default=None,
        help='Coordinator WebSocket URL (default: WATCHSYNC_SERVER or ws://localhost:8080/ws)'
    )

    parser.add_argument(
        '--room',
        default=None,
        help='Room id to join (default: WATCHSYNC_ROOM)'
    )

    parser.add_argument(
        '--name',
        default=None,
        help='Display name announced on join'
    )

    parser.add_argument(
        '--owner-auth',
        default=None,
        help='Owner credential for rooms you created'
    )

    parser.add_argument(
        '--backend',
        choices=BACKENDS,
        default=None,
        help='Player backend for every player kind'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    config = load_client_config().with_overrides(
        server_url=args.server,
        room_id=args.room,
        name=args.name,
        owner_auth=args.owner_auth,
        playlist_backend=args.backend,
        element_backend=args.backend,
    )
    if not config.room_id:
        parser.error('a room id is required (--room or WATCHSYNC_ROOM)')

    if args.name:
        IdentityStore(config.identity_path).remember_name(args.name)

    launch_sync_client(config, debug=args.debug)
    return 0


if __name__ == '__main__':
    sys.exit(main())
