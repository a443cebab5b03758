"""
Database CLI Commands

Schema creation
"""
import asyncio


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        else:
            print("Error: Unknown db action")
            return 1

    def _init(self, args) -> int:
        """Create missing tables."""
        from prizepool.database import DATABASE_URL, init_db, close_db

        if self.dry_run:
            print(f"[DRY RUN] Would create tables on {DATABASE_URL}")
            return 0

        async def run():
            try:
                await init_db()
            finally:
                await close_db()

        asyncio.run(run())
        print("✓ Tables created")
        return 0
