# Check the remote directory and pull users into the local store
from __future__ import annotations
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pos_core.config import load_settings
from pos_core.context import AppContext
from pos_core.errors import PosCoreError, user_message
from pos_core.logging import configure_from_settings


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Sync POS users from the remote directory")
    parser.add_argument("--config", help="Path to a pos_core TOML file")
    parser.add_argument("--provider", choices=["api", "supabase", "mock"], help="Override the remote provider")
    parser.add_argument("--retries", type=int, default=None, help="Health check attempts")
    parser.add_argument("--no-force", action="store_true", help="Respect the hourly throttle")
    parser.add_argument("--health-only", action="store_true", help="Only run the health check")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    if args.provider:
        settings.remote_provider = args.provider
        settings.validate()
    configure_from_settings(settings)

    ctx = AppContext.create(settings)
    try:
        ctx.store.initialize()

        print(f"\n{'='*60}")
        print(f"Remote: {settings.remote_provider}")
        print(f"{'='*60}")
        try:
            report = ctx.monitor.check_health(max_retries=args.retries)
        except PosCoreError as e:
            print(f"  Health check failed: {user_message(e)}")
            return 1
        print(f"  Status: {report.status} (database connected: {report.database_connected})")

        if args.health_only:
            return 0

        try:
            result = ctx.engine.sync(force=not args.no_force)
        except PosCoreError as e:
            print(f"  Sync failed: {user_message(e)}")
            return 1

        if not result.synced:
            print(f"  Not synced: {result.reason}")
            return 0 if result.reason != "all records failed" else 1

        counts = result.counts
        print(f"  Synced {counts.succeeded}/{counts.total} users ({counts.failed} failed)")
        for error in result.errors:
            print(f"    - {error['user']}: {error['error']}")

        stats = ctx.store.get_stats()
        print(f"  Local users: {stats['users']} ({stats['active_users']} active)")
        return 0
    finally:
        ctx.shutdown()


if __name__ == "__main__":
    sys.exit(main())
