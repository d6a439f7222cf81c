#!/usr/bin/env python3
"""All Sites Cron command line entry point."""

import argparse
import json
import logging
import sys

from config.settings import settings
from all_sites_cron.coordination.errors import (
    LockedError,
    NotMultisiteError,
    QueueUnavailableError,
    RateLimitedError,
    StateStoreError,
)
from all_sites_cron.services import lifecycle
from all_sites_cron.services.runtime import (
    get_orchestrator,
    get_queue_adapter,
    get_queue_store,
    get_site_lister,
    get_state_store,
)


# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_once() -> int:
    """Run one coordinated dispatch and print the result as JSON."""
    try:
        if not get_site_lister().is_multisite():
            raise NotMultisiteError()
        result = get_orchestrator().execute()
    except NotMultisiteError as e:
        print(f"❌ {e}")
        return 2
    except (LockedError, RateLimitedError) as e:
        print(f"⚠️  {e}")
        return 3
    except StateStoreError as e:
        print(f"❌ State store unavailable: {e}")
        return 5

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def drain_once() -> int:
    """Drain one queued job and print the result as JSON."""
    try:
        result = get_queue_adapter().drain()
    except QueueUnavailableError as e:
        print(f"❌ Queue backend unavailable: {e}")
        return 4
    except StateStoreError as e:
        print(f"❌ State store unavailable: {e}")
        return 5

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def serve():
    """Run the Flask development server."""
    from all_sites_cron.web_interface import app

    app.run(host=settings.web.host, port=settings.web.port, debug=settings.web.debug)


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="All Sites Cron - run wp-cron on every site of a multisite network")
    parser.add_argument(
        "command",
        choices=["serve", "run", "drain", "activate", "deactivate", "uninstall", "migrate-legacy"],
        help="What to do",
    )
    args = parser.parse_args(argv)

    if args.command == "serve":
        serve()
        return 0
    if args.command == "run":
        return run_once()
    if args.command == "drain":
        return drain_once()

    store = get_state_store()
    if args.command == "activate":
        cleared = lifecycle.activate(store, get_queue_store(), settings.queue.key)
        print(f"✅ Activated, cleared: {[key for key, existed in cleared.items() if existed]}")
    elif args.command == "deactivate":
        lifecycle.deactivate(store)
        print("✅ Deactivated")
    elif args.command == "uninstall":
        deleted = lifecycle.uninstall(store, get_queue_store(), settings.queue.key)
        print(f"✅ Uninstalled, removed {deleted} keys")
    elif args.command == "migrate-legacy":
        deleted = lifecycle.migrate_legacy_keys(store)
        if deleted is None:
            print("Legacy keys already migrated")
        else:
            print(f"✅ Removed {deleted} legacy keys")
    return 0


if __name__ == "__main__":
    sys.exit(main())
