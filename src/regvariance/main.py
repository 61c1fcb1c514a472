"""
Main application entry point for Regulatory Variance Analysis.
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import List, Optional

from tqdm import tqdm

from regvariance.analysis.progress import ProgressEmitter
from regvariance.analysis.variance_analyzer import VarianceAnalyzer
from regvariance.config.settings import ConfigError, Settings, load_run_config
from regvariance.data.models import AnalysisResult, ProgressEvent, RunConfig
from regvariance.gateway.client import AgileReporterClient, RetryPolicy
from regvariance.reports.excel_exporter import ExcelExporter
from regvariance.storage.report_saver import STATUS_COMPLETED, STATUS_FAILED, ReportSaver
from regvariance.utils.logging_config import setup_logging


class _ProgressBar:
    """tqdm bar driven by progress events."""

    def __init__(self):
        self.bar: Optional[tqdm] = None

    def __call__(self, event: ProgressEvent) -> None:
        if self.bar is None:
            self.bar = tqdm(total=event.total, desc="Analysing returns", unit="step")
        self.bar.n = event.current
        self.bar.set_postfix_str(event.message, refresh=False)
        self.bar.refresh()

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()


async def run_analysis(settings: Settings, run_config: RunConfig, concurrency: int,
                       emitter: ProgressEmitter) -> List[AnalysisResult]:
    """
    Authenticate and analyse every configured return.

    Args:
        settings: Application settings
        run_config: Returns to compare and the base date
        concurrency: Number of forms analysed at the same time
        emitter: Progress channel for the run

    Returns:
        Results for the forms that could be analysed
    """
    retry = RetryPolicy(
        max_retries=settings.max_retries,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
    )
    async with AgileReporterClient(settings.auth_config, settings.api_config, retry=retry) as client:
        await client.authenticate()
        analyzer = VarianceAnalyzer(client, concurrency=concurrency, progress=emitter,
                                    call_timeout=settings.call_timeout)
        return await analyzer.analyze(run_config.returns, run_config.base_date)


def run(config_file: str, output_file: Optional[str] = None, database_path: Optional[str] = None,
        concurrency: Optional[int] = None, show_progress: bool = True) -> int:
    """
    Run a full analysis: fetch, export to Excel and save to the report database.

    Returns:
        Process exit code
    """
    logger = logging.getLogger(__name__)
    settings = Settings()

    missing = settings.missing_credentials()
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return 1

    try:
        run_config = load_run_config(config_file)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if run_config.excluded:
        logger.info(f"Excluded returns: {', '.join(rc.code for rc in run_config.excluded)}")

    output_file = output_file or settings.default_output_file
    saver = ReportSaver(database_path or settings.database_path)
    emitter = ProgressEmitter()
    progress_bar = _ProgressBar()
    if show_progress:
        emitter.subscribe(progress_bar)

    start_time = time.time()
    results: List[AnalysisResult] = []
    try:
        results = asyncio.run(run_analysis(settings, run_config, concurrency or settings.max_concurrency,
                                           emitter))
    except Exception:
        progress_bar.close()
        try:
            saver.save_report(results, run_config, None, time.time() - start_time, status=STATUS_FAILED)
        except Exception as save_error:
            logger.error(f"Could not record failed run in database: {save_error}")
        raise
    progress_bar.close()

    written = ExcelExporter(settings).export(results, output_file)
    duration = time.time() - start_time
    report_id = saver.save_report(results, run_config, written, duration, status=STATUS_COMPLETED)

    logger.info("Analysis summary:")
    logger.info(f"  Returns requested: {len(run_config.returns)}")
    logger.info(f"  Returns analysed: {len(results)}")
    logger.info(f"  Skipped: {len(run_config.returns) - len(results)}")
    logger.info(f"  Output: {written or 'nothing written'}")
    logger.info(f"  Report ID: {report_id}")
    logger.info(f"  Total time: {duration:.2f}s")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Regulatory Variance Analysis - compare return instances and collect validation errors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyse the returns listed in a config file
  regvariance -c config/returns.yaml

  # Custom output workbook and database, five forms at a time
  regvariance -c config/returns.yaml -o out/variances.xlsx --db out/reports.db --concurrency 5
        """
    )
    parser.add_argument(
        "-c", "--config",
        required=True,
        help="Run configuration file (YAML or JSON)"
    )
    parser.add_argument(
        "-o", "--output",
        help="Output Excel file path"
    )
    parser.add_argument(
        "--db",
        help="SQLite database for saved reports"
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of forms analysed at the same time (default: MAX_CONCURRENCY or 3)"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Command line entry point."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level, args.log_file or settings.log_file)
    logger = logging.getLogger(__name__)
    logger.info("Starting Regulatory Variance Analysis")

    if args.concurrency is not None and args.concurrency < 1:
        logger.error(f"Concurrency must be at least 1, got {args.concurrency}")
        sys.exit(1)

    try:
        exit_code = run(
            config_file=args.config,
            output_file=args.output,
            database_path=args.db,
            concurrency=args.concurrency,
            show_progress=not args.no_progress,
        )
    except KeyboardInterrupt:
        logger.info("Processing interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Error during processing: {str(e)}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)
    logger.info("Processing completed successfully")


if __name__ == "__main__":
    main()
