"""
Compliance CLI Commands

TDS report and audit trail export
"""
import json
import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


class ComplianceCommand:
    """Compliance CLI command handler."""

    def __init__(self, dry_run: bool = False, database_url: Optional[str] = None):
        self.dry_run = dry_run
        self.database_url = database_url

    def _url(self) -> str:
        if self.database_url:
            return self.database_url
        from prizepool.database import DATABASE_URL
        return DATABASE_URL

    def execute(self, args) -> int:
        """Execute compliance command."""
        if args.compliance_action == "tds-report":
            return self._tds_report(args)
        elif args.compliance_action == "audit-trail":
            return self._audit_trail(args)
        else:
            print("Error: Unknown compliance action")
            return 1

    async def _with_session(self, fn):
        from sqlalchemy.pool import NullPool
        from prizepool.database import make_engine, make_sessionmaker

        engine = make_engine(self._url(), poolclass=NullPool)
        try:
            async with make_sessionmaker(engine)() as db:
                return await fn(db)
        finally:
            await engine.dispose()

    def _write(self, payload: Dict[str, Any], output: Optional[str]) -> None:
        text = json.dumps(payload, indent=2, default=str)
        if output:
            with open(output, "w", encoding="utf-8") as fh:
                fh.write(text)
            print(f"✓ Written to {output}")
        else:
            print(text)

    def _tds_report(self, args) -> int:
        """Tax withheld on prize payouts in a date range."""
        from prizepool.orm.base import naive_utc, utcnow
        from prizepool.services import compliance_service

        to_date = naive_utc(datetime.fromisoformat(args.to_date)) if args.to_date else utcnow()
        from_date = (naive_utc(datetime.fromisoformat(args.from_date)) if args.from_date
                     else to_date - timedelta(days=30))
        if from_date > to_date:
            print("Error: --from must not be after --to")
            return 1

        print(f"=== TDS Report {from_date.date()} to {to_date.date()} ===")
        summary = asyncio.run(self._with_session(
            lambda db: compliance_service.get_tds_summary(db, from_date, to_date, organizer_id=args.organizer)
        ))
        self._write(summary, args.output)
        return 0

    def _audit_trail(self, args) -> int:
        """Newest-first compliance entries for one tournament or organizer."""
        from prizepool.services import compliance_service

        trail = asyncio.run(self._with_session(
            lambda db: compliance_service.get_audit_trail(
                db,
                organizer_id=args.organizer,
                tournament_id=args.tournament,
                page=1,
                limit=args.limit,
            )
        ))
        print(f"=== Audit Trail ({trail['total']} entries) ===")
        self._write(trail, args.output)
        return 0
