"""CLI entrypoint for Deal Finder."""

import argparse
import json
import sys


def cmd_analyze(args):
    """Run one analysis cycle for a single neighborhood."""
    from deal_finder.config import settings
    from deal_finder.listings import build_source
    from deal_finder.pipeline import AnalysisPipeline
    from deal_finder.scheduler import setup_logging
    from deal_finder.validation import PropertyKind

    setup_logging()

    try:
        source = build_source(settings, input_path=args.input)
        pipeline = AnalysisPipeline.from_settings(settings, source=source)
        result = pipeline.run(args.neighborhood, PropertyKind(args.kind))
    except Exception as e:
        print(f"\n✗ Analysis failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        print(f"\n✓ Analysis complete (run_id: {result.run_id})")
        print(f"  Listings: {result.listings_seen} (threshold {result.threshold}%)")
        print(f"  New: {result.new}  Price changed: {result.price_changed}  Stale: {result.stale}  Vacated: {result.vacated}")
        print(f"  Analyzed: {result.analyzed}  Cache hits: {result.cache_hits}  Degraded: {result.degraded}  No comparables: {result.no_comparables}")
        print(f"  Published: {result.published}  Retracted: {result.retracted}")
        if result.errors:
            print(f"  Errors: {result.errors}")

    if not result.success:
        print(f"\n✗ Analysis failed: {result.error_message}")
        sys.exit(1)


def cmd_serve(args):
    """Start the FastAPI server."""
    import uvicorn

    from deal_finder.config import settings

    uvicorn.run(
        "deal_finder.api.app:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )


def cmd_db(args):
    """Database management commands."""
    from sqlalchemy import func, select
    from sqlalchemy.orm import Session

    from deal_finder.db.models import Base
    from deal_finder.db.session import _get_default_engine, clear_db, init_db, reset_engine

    if args.db_command == "info":
        engine = _get_default_engine()
        init_db()
        print(f"Database URL: {engine.url}")
        print(f"Database Type: {engine.dialect.name}")
        print()

        with Session(engine) as session:
            print("Table Row Counts:")
            for table in Base.metadata.sorted_tables:
                count = session.execute(select(func.count()).select_from(table)).scalar()
                print(f"  {table.name}: {count}")

    elif args.db_command == "clear":
        if not args.yes:
            engine = _get_default_engine()
            print(f"⚠️  WARNING: This will delete ALL data from {engine.url}")
            print("   This operation cannot be undone!")
            response = input("\nAre you sure? Type 'yes' to confirm: ")
            if response.lower() != "yes":
                print("Aborted.")
                sys.exit(0)

        try:
            clear_db()
            print("✓ Database cleared successfully")
        except Exception as e:
            print(f"✗ Failed to clear database: {e}")
            sys.exit(1)

    elif args.db_command == "reset":
        reset_engine()
        print("✓ Database engine reset (connections cleared)")
        print("  Next database access will create a fresh connection")

    else:
        print("Usage: deal-finder db {info,clear,reset}")
        sys.exit(1)


def cmd_registry(args):
    """Building registry management."""
    from deal_finder.db.session import SessionLocal, init_db
    from deal_finder.registry import SqlRegistry

    if args.registry_command != "add":
        print("Usage: deal-finder registry add ADDRESS --jurisdiction CODE")
        sys.exit(1)

    init_db()
    session = SessionLocal()
    try:
        building = SqlRegistry(session).add(
            args.address,
            args.jurisdiction,
            unit_count=args.units,
            built_year=args.built,
        )
        print(f"✓ Registry building saved: {building.address} ({building.jurisdiction_code})")
    except Exception as e:
        session.rollback()
        print(f"✗ Failed to save registry building: {e}")
        sys.exit(1)
    finally:
        session.close()


def cmd_run(args):
    """Run the scheduler (foreground or one-time batch)."""
    from deal_finder.scheduler import Scheduler, setup_logging

    setup_logging()

    scheduler = Scheduler()

    if args.once:
        print("Running analysis job once...")
        stats = scheduler.run_now()

        print(f"\n✓ Analysis complete:")
        print(f"  Successful: {stats.successful}/{len(stats.results)}")
        print(f"  Analyzed: {stats.analyzed}")
        print(f"  Published: {stats.published}")
        print(f"  Retracted: {stats.retracted}")

        if stats.failed:
            print(f"  Failed: {stats.failed}")
            sys.exit(1)
    else:
        if not scheduler.config.schedule_enabled:
            print("✗ Scheduling is disabled in configuration.")
            print("  Enable it in config.yaml (scheduling.enabled: true)")
            print("  or set DEAL_FINDER_SCHEDULE_ENABLED=true")
            sys.exit(1)

        scheduler.start()
        next_run = scheduler.get_next_run_time()
        if next_run:
            print(f"✓ Scheduler started")
            print(f"  Next run: {next_run.isoformat()}")
            print(f"  Cron: {scheduler.config.cron_expression}")
            print(f"  Neighborhoods: {', '.join(scheduler.config.neighborhoods)}")
            print("\nPress Ctrl+C to stop...")

        try:
            import time
            while True:
                time.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            print("\n\nShutting down...")
            scheduler.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deal Finder: undervalued NYC listings")
    sub = parser.add_subparsers(dest="command")

    # analyze
    p_analyze = sub.add_parser("analyze", help="Analyze one neighborhood now")
    p_analyze.add_argument("--neighborhood", required=True, help="Neighborhood slug")
    p_analyze.add_argument("--kind", choices=["rental", "sale"], default="rental")
    p_analyze.add_argument("--input", default=None, help="JSON export to read instead of the search API")
    p_analyze.add_argument("--json", action="store_true", help="Print the run result as JSON")
    p_analyze.set_defaults(func=cmd_analyze)

    # run
    p_run = sub.add_parser("run", help="Run scheduled analysis")
    p_run.add_argument(
        "--once",
        action="store_true",
        help="Run the analysis job once and exit (don't start scheduler)",
    )
    p_run.set_defaults(func=cmd_run)

    # serve
    p_serve = sub.add_parser("serve", help="Start the HTTP API")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    # db
    p_db = sub.add_parser("db", help="Database management")
    db_sub = p_db.add_subparsers(dest="db_command")
    db_sub.add_parser("info", help="Show database connection and row counts")
    db_clear = db_sub.add_parser("clear", help="Delete all data from the database")
    db_clear.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Skip confirmation prompt",
    )
    db_sub.add_parser("reset", help="Reset database engine (clear cached connections)")
    p_db.set_defaults(func=cmd_db)

    # registry
    p_registry = sub.add_parser("registry", help="Building registry management")
    registry_sub = p_registry.add_subparsers(dest="registry_command")
    registry_add = registry_sub.add_parser("add", help="Add a rent-regulated building")
    registry_add.add_argument("address", help="Street address")
    registry_add.add_argument("--jurisdiction", required=True, help="Borough or zip code")
    registry_add.add_argument("--units", type=int, default=None, help="Units in the building")
    registry_add.add_argument("--built", type=int, default=None, help="Construction year")
    p_registry.set_defaults(func=cmd_registry)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == "__main__":
    main()
