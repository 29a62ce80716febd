from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from ..config import GradingConfig
from ..domain import TestResult
from .report_csv import write_csv_reports
from .report_excel import write_excel_report
from .report_rows import build_detail_rows, build_summary_rows, detail_header, summary_header
from .result_table import ResultTable


logger = logging.getLogger(__name__)


def write_reports(
    results: Sequence[TestResult],
    *,
    table: ResultTable,
    config: GradingConfig,
    names: Mapping[str, str],
    workspace: Path,
    output_dir: Path,
    as_csv: bool = False,
    csv_encoding: str = "utf-8",
) -> list[Path]:
    """Render the detail and summary reports; returns the written files."""

    detail_rows = build_detail_rows(results, config=config, table=table, names=names, workspace=workspace)
    summary_rows = build_summary_rows(config=config, table=table, names=names)
    kwargs = dict(
        detail_header=detail_header(config),
        detail_rows=detail_rows,
        summary_header=summary_header(config),
        summary_rows=summary_rows,
    )
    if as_csv:
        paths = list(write_csv_reports(output_dir, config.output_file_name, encoding=csv_encoding, **kwargs))
    else:
        paths = [write_excel_report(output_dir, config.output_file_name, task_count=len(config.tasks), **kwargs)]
    for path in paths:
        logger.info("wrote %s", path)
    return paths
