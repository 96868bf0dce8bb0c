"""Command line entry point."""
import sys
import argparse
from pathlib import Path
from typing import List, Optional

from .config.settings import AppSettings, get_settings
from .engine.controller import RunController, RunOutcome
from .engine.memory import FINGERPRINTS, SKUS, SqliteSetStore
from .engine.sku_matcher import SkuMatcher
from .report.picker import pick_reports
from .report.reader import ReportReader
from .report.writer import ReportWriter
from .utils.exceptions import DedupFlowError, OutputError, ReportError
from .utils.logger import configure_logging, get_logger, set_report_context

logger = get_logger()

FORGET_TARGETS = {
    "fingerprints": (FINGERPRINTS,),
    "skus": (SKUS,),
    "all": (FINGERPRINTS, SKUS),
}


def build_stores(settings: AppSettings) -> dict:
    return {
        FINGERPRINTS: SqliteSetStore(settings.fingerprint_path, FINGERPRINTS),
        SKUS: SqliteSetStore(settings.sku_path, SKUS),
    }


def forget_command(settings: AppSettings, target: str) -> None:
    """Delete memory files so their records count as unseen again."""
    stores = build_stores(settings)
    for kind in FORGET_TARGETS[target]:
        store = stores[kind]
        if store.forget():
            print(f"✓ Forgot {kind} ({store.path})")
        else:
            print(f"No {kind} memory at {store.path}")


def stats_command(settings: AppSettings) -> None:
    """Print how much each memory file holds."""
    for kind, store in build_stores(settings).items():
        if not store.exists():
            print(f"{kind:<13} {'-':>10}  {store.path} (not created yet)")
            continue
        print(f"{kind:<13} {len(store.load()):>10}  {store.path}")


def process_report(
    path: Path,
    reader: ReportReader,
    controller: RunController,
    writer: ReportWriter
) -> RunOutcome:
    """Run one report through the engine and write its output files."""
    set_report_context(path.name)
    try:
        logger.info(f"Processing {path}")
        records = reader.read(path)
        outcome = controller.run(records)

        result = outcome.result
        for skipped in result.skipped:
            logger.warning(f"Row {skipped.line} skipped: {skipped.reason}")

        try:
            files = writer.write(outcome)
        except OutputError:
            logger.critical(
                f"{result.new_count} new transactions from {path.name} are remembered but "
                f"their output could not be written; forget or restore memory before re-running"
            )
            raise

        logger.info(
            f"Done: {result.new_count} new, {result.duplicate_count} already recorded, "
            f"{result.skipped_count} skipped -> {', '.join(f.name for f in files)}"
        )
        return outcome
    finally:
        set_report_context(None)


def run_command(settings: AppSettings, reports: List[Path]) -> int:
    """Process each report as its own run, in order."""
    if not reports:
        reports = pick_reports()
        if not reports:
            logger.info("No files selected, exiting.")
            return 0

    stores = build_stores(settings)
    controller = RunController(stores[FINGERPRINTS], stores[SKUS])
    reader = ReportReader(settings.report_skip_rows, settings.report_delimiter)
    writer = ReportWriter(
        output_dir=Path(settings.output_dir),
        delimiter=settings.output_delimiter,
        output_prefix=settings.output_prefix,
        new_sku_prefix=settings.new_sku_prefix,
        placeholder_sku=settings.placeholder_sku,
        sku_matcher=SkuMatcher(settings.sku_fuzzy_threshold)
    )

    failed = 0
    for path in reports:
        try:
            process_report(Path(path), reader, controller, writer)
        except ReportError as e:
            # Nothing was remembered for this report; the others can still run.
            logger.error(f"Skipping report: {e}")
            failed += 1

    if failed:
        logger.error(f"{failed} of {len(reports)} reports could not be read")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for DedupFlow."""
    parser = argparse.ArgumentParser(
        description="Aggregate sales reports, counting each transaction only once across runs"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Settings file (default: $DEDUPFLOW_CONFIG or the bundled config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Process reports (default command)")
    run_parser.add_argument("reports", nargs="*", type=Path, help="CSV reports; opens a file picker if omitted")

    forget_parser = subparsers.add_parser("forget", help="Delete remembered fingerprints and/or SKUs")
    forget_parser.add_argument("target", choices=sorted(FORGET_TARGETS))

    subparsers.add_parser("stats", help="Show memory sizes")

    args = parser.parse_args(argv)

    try:
        settings = get_settings(args.config)
    except DedupFlowError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    configure_logging(
        settings.log_level,
        Path(settings.log_dir) if settings.log_dir else None,
        settings.log_max_file_size_mb,
        settings.log_backup_count
    )

    try:
        if args.command == "forget":
            forget_command(settings, args.target)
            return 0

        if args.command == "stats":
            stats_command(settings)
            return 0

        return run_command(settings, getattr(args, "reports", []))
    except KeyboardInterrupt:
        logger.info("Interrupted; memory from completed reports is kept")
        return 1
    except (DedupFlowError, OSError) as e:
        logger.critical(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
