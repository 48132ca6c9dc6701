"""
Command line entry point.

Usage:
    python -m migrations schema provision [--phase N] [--skip-dependency-check] [--skip-policies]
    python -m migrations schema list
    python -m migrations schema validate
    python -m migrations migrate run [--collection NAME ...] [--batch-size N] [--delay MS] [--sample N]
    python -m migrations migrate list [--source]
    python -m migrations migrate status

Exit codes: 0 on full success, 1 when a phase or collection failed (or a collection
inserted nothing although it had records), 2 when only some records failed.
"""

import asyncio
import logging
import signal

import typer

from db.config import settings
from db.database import PostgresTarget
from db.provisioner import SchemaProvisioner
from db.schema import PHASES
from migrations.collections import CollectionMapper
from migrations.extractor import Extractor, MongoSource
from migrations.loader import Loader
from migrations.orchestrator import MigrationOrchestrator
from migrations.stats import EXIT_FAILED, EXIT_OK
from migrations.verifier import MigrationStatusChecker, SchemaValidator

logger = logging.getLogger(__name__)

app = typer.Typer(help="Document store to PostgreSQL platform migration")
schema_app = typer.Typer(help="Provision and inspect the destination schema")
migrate_app = typer.Typer(help="Move collections into the destination tables")
app.add_typer(schema_app, name="schema")
app.add_typer(migrate_app, name="migrate")


@app.callback()
def configure_logging():
    logging.basicConfig(
        level=settings.logging_level.upper(),
        format="%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s",
    )


def install_cancel_handler(cancel_event: asyncio.Event):
    """First Ctrl+C requests a cooperative stop between batches."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported on this platform; Ctrl+C aborts immediately")


# ---------------------------------------------------------------------------
# schema
# ---------------------------------------------------------------------------


@schema_app.command("provision")
def schema_provision(
    phase: int | None = typer.Option(None, "--phase", "-p", help="Provision a single phase only"),
    skip_dependency_check: bool = typer.Option(
        False, "--skip-dependency-check", help="Create a single phase without checking earlier phases exist"
    ),
    skip_policies: bool = typer.Option(False, "--skip-policies", help="Do not enable row-level security"),
    create_database: bool = typer.Option(False, "--create-database", help="Create the target database if missing"),
):
    """Create tables phase by phase, then indexes, triggers and row-level policies."""

    async def run_provision() -> int:
        target = PostgresTarget()
        try:
            if create_database:
                await target.ensure_database()
            provisioner = SchemaProvisioner(target)

            if phase is not None:
                selected = provisioner.get_phase(phase)
                if selected is None:
                    logger.error(f"Unknown phase {phase}. Valid phases: 1-{len(PHASES)}")
                    return EXIT_FAILED
                result = await provisioner.provision_phase(selected, check_dependencies=not skip_dependency_check)
                return EXIT_OK if result.succeeded else EXIT_FAILED

            report = await provisioner.provision(include_policies=not skip_policies)
            report.log_summary()
            return EXIT_OK if report.succeeded else EXIT_FAILED
        except Exception as e:
            logger.exception(f"Provisioning failed: {str(e)}")
            return EXIT_FAILED
        finally:
            await target.close()

    typer.echo("Starting schema provisioning...")
    raise typer.Exit(code=asyncio.run(run_provision()))


@schema_app.command("list")
def schema_list():
    """Show the provisioning phases and their tables."""
    for migration_phase in PHASES:
        typer.echo(f"Phase {migration_phase.number:>2} ({migration_phase.name}): {', '.join(migration_phase.table_names)}")


@schema_app.command("validate")
def schema_validate():
    """Report catalog tables and foreign keys missing from the destination."""

    async def run_validate() -> int:
        target = PostgresTarget()
        try:
            validator = SchemaValidator(target)
            missing = await validator.missing_tables()
            invalid_relations = await validator.invalid_relations()
        except Exception as e:
            logger.exception(f"Schema validation failed: {str(e)}")
            return EXIT_FAILED
        finally:
            await target.close()

        if missing:
            typer.echo(f"❌ Missing tables: {', '.join(missing)}")
        else:
            typer.echo("✅ All tables exist")
        if invalid_relations:
            typer.echo(f"❌ Missing relations: {len(invalid_relations)}")
            for relation in invalid_relations:
                typer.echo(f"  - {relation}")
        else:
            typer.echo("✅ All relations exist")
        return EXIT_FAILED if missing or invalid_relations else EXIT_OK

    raise typer.Exit(code=asyncio.run(run_validate()))


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------


@migrate_app.command("run")
def migrate_run(
    collection: list[str] | None = typer.Option(
        None, "--collection", "-c", help="Migrate only this collection (repeatable)"
    ),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", min=1, help="Records per bulk insert"),
    delay: int | None = typer.Option(None, "--delay", min=0, help="Pause between batches in milliseconds"),
    sample: int | None = typer.Option(
        None,
        "--sample",
        "-s",
        min=1,
        help="Limit migration to N documents per collection for testing (e.g., --sample 100)",
    ),
    report: str | None = typer.Option(None, "--report", help="Append run records to this JSONL file"),
):
    """Extract, transform and load collections into their destination tables."""

    async def run_migration() -> int:
        cancel_event = asyncio.Event()
        install_cancel_handler(cancel_event)
        source = MongoSource()
        target = PostgresTarget()
        try:
            orchestrator = MigrationOrchestrator(
                source,
                target,
                extractor=Extractor(source, sample_size=sample),
                loader=Loader(
                    target,
                    batch_size=batch_size,
                    delay_seconds=None if delay is None else delay / 1000,
                    cancel_event=cancel_event,
                ),
                cancel_event=cancel_event,
                report_path=report or settings.migration_report_path,
            )
            summary = await orchestrator.run_all(collection or None)
            return summary.exit_code
        except Exception as e:
            logger.exception(f"Migration failed: {str(e)}")
            return EXIT_FAILED
        finally:
            source.close()
            await target.close()

    if sample:
        logger.info(f"🧪 SAMPLE MODE: Limiting migration to {sample} documents per collection")
    typer.echo("Starting migration...")
    raise typer.Exit(code=asyncio.run(run_migration()))


@migrate_app.command("list")
def migrate_list(
    show_source: bool = typer.Option(False, "--source", help="Also list source collections without a mapping"),
):
    """Show collection to table mappings."""
    mapper = CollectionMapper()
    for source_collection, table in mapper.items():
        typer.echo(f"{source_collection:<28} → {table}")

    if not show_source:
        return

    async def run_list() -> list[str]:
        source = MongoSource()
        try:
            return await source.list_collections()
        finally:
            source.close()

    try:
        names = asyncio.run(run_list())
    except Exception as e:
        logger.exception(f"Listing source collections failed: {str(e)}")
        raise typer.Exit(code=EXIT_FAILED)
    unmapped = [name for name in names if not mapper.is_mapped(name)]
    if unmapped:
        typer.echo(f"⚠️  Unmapped source collections: {', '.join(unmapped)}")


@migrate_app.command("status")
def migrate_status():
    """Compare source document counts with destination row counts."""

    async def run_status() -> int:
        source = MongoSource()
        target = PostgresTarget()
        try:
            checker = MigrationStatusChecker(source, target)
            statuses = await checker.collection_status()
        except Exception as e:
            logger.exception(f"Status check failed: {str(e)}")
            return EXIT_FAILED
        finally:
            source.close()
            await target.close()

        checker.log_status_summary(statuses)
        pending = [status.name for status in statuses.values() if not status.is_complete]
        if pending:
            total_source = sum(status.source_count for status in statuses.values())
            total_destination = sum(status.destination_count for status in statuses.values())
            typer.echo(f"⏳ Pending collections: {', '.join(pending)}")
            typer.echo(f"📈 Overall progress: {total_destination:,} / {total_source:,} documents")
        else:
            typer.echo("✅ All collections are fully migrated!")
        return EXIT_OK

    raise typer.Exit(code=asyncio.run(run_status()))


if __name__ == "__main__":
    app()
