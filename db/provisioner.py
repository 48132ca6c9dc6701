"""
Schema provisioning against the destination store.

Tables are created phase by phase in ascending order. A phase is only created when
every table of the earlier phases already exists (unless the check is explicitly
skipped), and the first failing statement stops the phase. Tables already created are
left in place; every statement is idempotent, so a fixed run can simply be repeated.
"""

import logging
from dataclasses import dataclass, field

from db.schema import (
    INDEXES,
    PHASES,
    ROW_SECURED_TABLES,
    UPDATED_AT_FUNCTION,
    MigrationPhase,
    build_row_policies,
    render_ddl,
    render_enable_row_security,
    render_trigger,
    trigger_tables,
)
from migrations.exceptions import DDLError

logger = logging.getLogger(__name__)

EXTENSIONS = ("pgcrypto",)


@dataclass
class PhaseResult:
    phase: MigrationPhase
    succeeded: bool
    created_tables: list[str] = field(default_factory=list)
    error: DDLError | None = None
    skipped: bool = False


@dataclass
class StepResult:
    step: str
    applied: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


@dataclass
class ProvisionReport:
    phases: list[PhaseResult] = field(default_factory=list)
    steps: list[StepResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.phases) and all(step.succeeded for step in self.steps)

    def log_summary(self):
        logger.info("\n" + "=" * 60)
        logger.info("🏗️  SCHEMA PROVISIONING SUMMARY")
        logger.info("=" * 60)
        for result in self.phases:
            if result.skipped:
                icon = "⏭️ "
            else:
                icon = "✅" if result.succeeded else "❌"
            logger.info(
                f"  {icon} Phase {result.phase.number:>2} ({result.phase.name}): "
                f"{len(result.created_tables)}/{len(result.phase.tables)} tables"
            )
            if result.error:
                logger.info(f"    - {result.error}")
        for step in self.steps:
            icon = "✅" if step.succeeded else "⚠️ "
            logger.info(f"  {icon} {step.step}: {step.applied} applied, {len(step.errors)} errors")
            for error in step.errors[:5]:
                logger.info(f"    - {error}")
            if len(step.errors) > 5:
                logger.info(f"    ... and {len(step.errors) - 5} more")
        logger.info("=" * 60 + "\n")


class SchemaProvisioner:
    def __init__(self, target, phases: list[MigrationPhase] | None = None):
        self.target = target
        self.phases = phases if phases is not None else PHASES

    def get_phase(self, number: int) -> MigrationPhase | None:
        for phase in self.phases:
            if phase.number == number:
                return phase
        return None

    async def _missing_dependencies(self, phase: MigrationPhase) -> list[str]:
        existing = await self.target.list_tables()
        required = [
            table.name for earlier in self.phases if earlier.number < phase.number for table in earlier.tables
        ]
        return [name for name in required if name not in existing]

    async def provision_phase(self, phase: MigrationPhase, check_dependencies: bool = True) -> PhaseResult:
        """Create every table of one phase, stopping at the first failing statement."""
        if check_dependencies:
            missing = await self._missing_dependencies(phase)
            if missing:
                error = DDLError(missing[0], f"required by phase {phase.number} but does not exist")
                logger.error(f"❌ Phase {phase.number} ({phase.name}) not started: {error}")
                return PhaseResult(phase=phase, succeeded=False, error=error)

        logger.info(f"📦 Phase {phase.number} ({phase.name}): {', '.join(phase.table_names)}")
        created = []
        for table in phase.tables:
            try:
                await self.target.execute_ddl(render_ddl(table))
            except Exception as e:
                error = DDLError(table.name, str(e))
                logger.error(f"❌ {error}")
                return PhaseResult(phase=phase, succeeded=False, created_tables=created, error=error)
            created.append(table.name)
            logger.debug(f"Created table {table.name}")
        return PhaseResult(phase=phase, succeeded=True, created_tables=created)

    async def provision_all(self) -> list[PhaseResult]:
        """Walk all phases ascending; later phases are reported skipped after a failure."""
        results = []
        failed = False
        for phase in sorted(self.phases, key=lambda p: p.number):
            if failed:
                results.append(PhaseResult(phase=phase, succeeded=False, skipped=True))
                continue
            # Earlier phases of this run already succeeded, so no dependency query.
            result = await self.provision_phase(phase, check_dependencies=False)
            results.append(result)
            failed = not result.succeeded
        return results

    async def _apply(self, step: StepResult, statement: str, label: str):
        try:
            await self.target.execute_ddl(statement)
            step.applied += 1
        except Exception as e:
            logger.warning(f"⚠️ {step.step} failed for {label}: {e}")
            step.errors.append(f"{label}: {e}")

    async def ensure_extensions(self) -> StepResult:
        step = StepResult("extensions")
        for extension in EXTENSIONS:
            await self._apply(step, f"CREATE EXTENSION IF NOT EXISTS {extension};", extension)
        return step

    async def provision_indexes(self) -> StepResult:
        step = StepResult("indexes")
        for index in INDEXES:
            await self._apply(step, index.render(), index.index_name)
        return step

    async def provision_triggers(self) -> StepResult:
        step = StepResult("triggers")
        await self._apply(step, UPDATED_AT_FUNCTION, "update_updated_at_column")
        if not step.succeeded:
            return step
        for table in trigger_tables():
            for statement in render_trigger(table):
                await self._apply(step, statement, table)
        return step

    async def provision_row_policies(self) -> StepResult:
        step = StepResult("row_policies")
        for table in ROW_SECURED_TABLES:
            await self._apply(step, render_enable_row_security(table), table)
        for policy in build_row_policies():
            try:
                await self.target.enable_row_policy(policy.table, policy)
                step.applied += 1
            except Exception as e:
                logger.warning(f"⚠️ Policy '{policy.name}' on {policy.table} failed: {e}")
                step.errors.append(f"{policy.table}.{policy.name}: {e}")
        return step

    async def provision(self, include_policies: bool = True) -> ProvisionReport:
        report = ProvisionReport()
        report.steps.append(await self.ensure_extensions())
        report.phases = await self.provision_all()
        if not all(result.succeeded for result in report.phases):
            logger.error("❌ Table creation incomplete; skipping indexes, triggers and policies")
            return report
        report.steps.append(await self.provision_indexes())
        report.steps.append(await self.provision_triggers())
        if include_policies:
            report.steps.append(await self.provision_row_policies())
        return report
