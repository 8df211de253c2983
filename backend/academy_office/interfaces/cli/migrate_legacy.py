import sys
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from academy_office.application.errors import ConfigurationError, TransientStorageError
from academy_office.application.services.migration_service import ensure_semester, run_migration
from academy_office.config import MigrationSettings
from academy_office.infrastructure.db.session import build_engine, build_session_factory
from academy_office.infrastructure.legacy.snapshot import load_snapshot
from academy_office.infrastructure.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _parse_date(value: str, *, setting: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ConfigurationError(f"{setting} must be an ISO date, got {value!r}") from exc


def main(migration_settings: MigrationSettings | None = None) -> int:
    configure_logging()
    migration_settings = migration_settings or MigrationSettings()
    if not migration_settings.database_url or not migration_settings.snapshot_path:
        logger.error(
            "migration_configuration_missing",
            has_database_url=bool(migration_settings.database_url),
            has_snapshot_path=bool(migration_settings.snapshot_path),
        )
        return EXIT_FAILURE

    try:
        start_date = _parse_date(migration_settings.semester_start_date, setting="MIGRATION_SEMESTER_START_DATE")
        end_date = _parse_date(migration_settings.semester_end_date, setting="MIGRATION_SEMESTER_END_DATE")
        snapshot = load_snapshot(migration_settings.snapshot_path)
    except ConfigurationError as exc:
        logger.error("migration_configuration_invalid", error=str(exc))
        return EXIT_FAILURE

    engine = build_engine(migration_settings.database_url)
    db = build_session_factory(engine)()
    try:
        try:
            semester = ensure_semester(
                db=db,
                name=migration_settings.semester_name,
                start_date=start_date,
                end_date=end_date,
            )
        except (ConfigurationError, SQLAlchemyError) as exc:
            logger.error("migration_semester_unavailable", semester_name=migration_settings.semester_name, error=str(exc))
            return EXIT_FAILURE

        try:
            run = run_migration(
                db=db,
                snapshot=snapshot,
                semester=semester,
                snapshot_path=migration_settings.snapshot_path,
            )
        except (TransientStorageError, SQLAlchemyError) as exc:
            logger.error("migration_aborted", error=str(exc))
            return EXIT_FAILURE
        summary = run.summary_json or {}
        logger.info(
            "migration_finished",
            run_id=run.id,
            status=run.status,
            tally=summary.get("tally", {}),
            integrity=summary.get("integrity", {}),
        )
        return EXIT_OK
    finally:
        db.close()
        engine.dispose()


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
