"""
Persistence of analysis runs to a local SQLite database.
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from regvariance.data.models import (
    CELL_DESCRIPTION_COLUMN,
    CELL_REFERENCE_COLUMN,
    DIFFERENCE_COLUMN,
    PERCENT_DIFFERENCE_COLUMN,
    AnalysisResult,
    RunConfig,
)
from regvariance.utils.calculations import count_meaningful_differences, is_meaningful_difference

STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'
MEMORY_DATABASE = ':memory:'

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS reports (
        id TEXT PRIMARY KEY,
        timestamp TEXT NOT NULL,
        base_date TEXT NOT NULL,
        total_returns INTEGER NOT NULL,
        total_variances INTEGER NOT NULL,
        total_validation_errors INTEGER NOT NULL,
        config_file TEXT NOT NULL,
        output_file TEXT NOT NULL,
        duration REAL NOT NULL,
        status TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS form_details (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        report_id TEXT NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
        form_name TEXT NOT NULL,
        form_code TEXT NOT NULL,
        confirmed INTEGER NOT NULL,
        variance_count INTEGER NOT NULL,
        validation_error_count INTEGER NOT NULL,
        base_date TEXT NOT NULL,
        comparison_date TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS variances (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        report_id TEXT NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
        form_code TEXT NOT NULL,
        cell_reference TEXT NOT NULL,
        cell_description TEXT NOT NULL,
        comparison_value TEXT,
        base_value TEXT,
        difference TEXT,
        percent_difference TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS validation_errors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        report_id TEXT NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
        form_code TEXT NOT NULL,
        severity TEXT NOT NULL,
        expression TEXT NOT NULL,
        status TEXT NOT NULL,
        message TEXT
    )""",
    "CREATE INDEX IF NOT EXISTS idx_reports_base_date ON reports(base_date)",
    "CREATE INDEX IF NOT EXISTS idx_form_details_report ON form_details(report_id)",
    "CREATE INDEX IF NOT EXISTS idx_variances_report ON variances(report_id, form_code)",
]


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


class ReportSaver:
    """Saves analysis runs and reads them back for browsing."""

    def __init__(self, database_path: str):
        self.database_path = database_path
        self.logger = logging.getLogger(__name__)
        # An in-memory database only lives as long as its connection
        self._memory_conn: Optional[sqlite3.Connection] = None

    @property
    def in_memory(self) -> bool:
        return self.database_path == MEMORY_DATABASE

    def _connect(self) -> sqlite3.Connection:
        if not self.in_memory:
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.database_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        for statement in SCHEMA:
            conn.execute(statement)
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self.in_memory:
            if self._memory_conn is None:
                self._memory_conn = self._connect()
            yield self._memory_conn
            return

        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        """Release the in-memory database, if one is held."""
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    def save_report(self, results: Sequence[AnalysisResult], run_config: RunConfig,
                    output_file: Optional[str], duration: float,
                    status: str = STATUS_COMPLETED) -> str:
        """
        Save one analysis run.

        Only variance rows with a meaningful difference are stored; the
        workbook keeps the full detail.

        Args:
            results: Results produced by the analyzer
            run_config: Configuration the run was started with
            output_file: Workbook written for the run, if any
            duration: Run time in seconds
            status: 'completed' or 'failed'

        Returns:
            The new report id
        """
        report_id = f"report-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"
        variance_counts = [count_meaningful_differences(r.variances) for r in results]

        with self._connection() as conn:
            with conn:
                conn.execute(
                    "INSERT INTO reports (id, timestamp, base_date, total_returns, total_variances, "
                    "total_validation_errors, config_file, output_file, duration, status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        report_id,
                        datetime.now().isoformat(),
                        run_config.base_date,
                        len(results),
                        sum(variance_counts),
                        sum(len(r.validation_errors) for r in results),
                        Path(run_config.source).name if run_config.source else '',
                        Path(output_file).name if output_file else '',
                        round(duration, 3),
                        status,
                    )
                )
                for result, variance_count in zip(results, variance_counts):
                    self._insert_result(conn, report_id, result, variance_count)

        self.logger.info(f"Report saved to database: {report_id}")
        return report_id

    def _insert_result(self, conn: sqlite3.Connection, report_id: str,
                       result: AnalysisResult, variance_count: int) -> None:
        base_date = result.base_instance.reference_date
        comparison_date = result.comparison_instance.reference_date
        conn.execute(
            "INSERT INTO form_details (report_id, form_name, form_code, confirmed, variance_count, "
            "validation_error_count, base_date, comparison_date) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (report_id, result.form_name, result.form_code, int(result.confirmed), variance_count,
             len(result.validation_errors), base_date, comparison_date)
        )
        conn.executemany(
            "INSERT INTO variances (report_id, form_code, cell_reference, cell_description, "
            "comparison_value, base_value, difference, percent_difference) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (report_id, result.form_code,
                 str(row.get(CELL_REFERENCE_COLUMN, '')),
                 str(row.get(CELL_DESCRIPTION_COLUMN, '')),
                 _as_text(row.get(comparison_date)),
                 _as_text(row.get(base_date)),
                 _as_text(row.get(DIFFERENCE_COLUMN)),
                 _as_text(row.get(PERCENT_DIFFERENCE_COLUMN)))
                for row in result.variances
                if is_meaningful_difference(row.get(DIFFERENCE_COLUMN))
            ]
        )
        conn.executemany(
            "INSERT INTO validation_errors (report_id, form_code, severity, expression, status, message) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [(report_id, result.form_code, v.severity, v.expression, v.status, v.message)
             for v in result.validation_errors]
        )

    def list_reports(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent reports first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM reports ORDER BY timestamp DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        """A report with its form details, or None if unknown."""
        with self._connection() as conn:
            report = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
            if report is None:
                return None
            forms = conn.execute(
                "SELECT * FROM form_details WHERE report_id = ? ORDER BY form_name", (report_id,)
            ).fetchall()
        data = dict(report)
        data['forms'] = [dict(row) for row in forms]
        return data

    def get_variances(self, report_id: str, form_code: str) -> List[Dict[str, Any]]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM variances WHERE report_id = ? AND form_code = ? ORDER BY cell_reference",
                (report_id, form_code)
            ).fetchall()
        return [dict(row) for row in rows]

    def get_validation_errors(self, report_id: str, form_code: str) -> List[Dict[str, Any]]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM validation_errors WHERE report_id = ? AND form_code = ?",
                (report_id, form_code)
            ).fetchall()
        return [dict(row) for row in rows]
