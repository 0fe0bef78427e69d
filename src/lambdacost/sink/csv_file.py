import asyncio
import csv
import math
from pathlib import Path

import structlog

from lambdacost.models import AccountReport, ResourceReport

logger = structlog.get_logger()

REPORT_HEADER: "list[str]" = [
    "function-name",
    "timestamp",
    "monthly-cost",
    "invocations",
    "average-duration",
    "cost-per-100m-requests",
]
ACCOUNT_REPORT_HEADER: "list[str]" = [
    "timestamp",
    "monthly-cost",
    "cost-percentage-change",
]
OUTPUT_SUFFIX = "-output.csv"
ACCOUNT_PREFIX = "account"


def report_path(
    output_dir: "str | Path",
    resource_name: "str",
    start_month: "str",
    end_month: "str",
) -> "Path":
    return Path(output_dir) / f"{resource_name}-{start_month}-{end_month}{OUTPUT_SUFFIX}"


def account_report_path(
    output_dir: "str | Path",
    start_month: "str",
    end_month: "str",
) -> "Path":
    return report_path(output_dir, ACCOUNT_PREFIX, start_month, end_month)


def _cell(value: "float | None") -> "str":
    # null ratios become empty cells
    if value is None:
        return ""
    # "NaN" as in reports produced before, str() would give "nan"
    if math.isnan(value):
        return "NaN"
    return str(value)


def _write_rows(
    path: "Path",
    header: "list[str]",
    rows: "list[list[str]]",
) -> "None":
    path.parent.mkdir(parents=True, exist_ok=True)
    # full rewrite on every run
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(header)
        writer.writerows(rows)


class CsvFileSink:
    """
    CsvFileSink writes one delimited file per report with a
    header row followed by one row per bucket.
    """

    def __init__(self, output_dir: "str | Path" = ".") -> "None":
        self._output_dir = Path(output_dir)

    @property
    def name(self) -> "str":
        return "csv"

    def path_for(self, report: "ResourceReport") -> "Path":
        return report_path(
            self._output_dir,
            report.resource_name,
            report.start_month,
            report.end_month,
        )

    def account_path_for(self, report: "AccountReport") -> "Path":
        return account_report_path(
            self._output_dir, report.start_month, report.end_month
        )

    async def write(self, report: "ResourceReport") -> "None":
        path = self.path_for(report)
        rows = [
            [
                report.resource_name,
                record.period_start,
                _cell(record.cost),
                _cell(record.invocations),
                _cell(record.average_duration),
                _cell(record.cost_per_100m),
            ]
            for record in report.records
        ]
        await asyncio.to_thread(_write_rows, path, REPORT_HEADER, rows)
        logger.info("csv_report_written", path=str(path), rows=len(rows))

    async def write_account(self, report: "AccountReport") -> "None":
        path = self.account_path_for(report)
        rows = [
            [
                record.period_start,
                _cell(record.cost),
                _cell(record.cost_percentage_change),
            ]
            for record in report.records
        ]
        await asyncio.to_thread(_write_rows, path, ACCOUNT_REPORT_HEADER, rows)
        logger.info("csv_account_report_written", path=str(path), rows=len(rows))
