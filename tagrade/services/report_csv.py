from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path

from ..exceptions import SetupError
from .report_rows import FAILED_COMPILE_COMMAND, DetailRow, SummaryRow


DETAIL_SUFFIX = "-detail.csv"
SUMMARY_SUFFIX = "-summary.csv"


def _cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.3f}"
    return value


def _write(path: Path, header: Sequence[str], rows: list[list[object]], encoding: str) -> None:
    try:
        with path.open("w", encoding=encoding, errors="replace", newline="") as fp:
            writer = csv.writer(fp)
            writer.writerow(header)
            for row in rows:
                writer.writerow([_cell(v) for v in row])
    except OSError as exc:
        raise SetupError(f"cannot write report {path}: {exc}") from exc


def write_csv_reports(
    output_dir: Path,
    base_name: str,
    *,
    detail_header: Sequence[str],
    detail_rows: Sequence[DetailRow],
    summary_header: Sequence[str],
    summary_rows: Sequence[SummaryRow],
    encoding: str = "utf-8",
) -> tuple[Path, Path]:
    """Write `<base>-detail.csv` and `<base>-summary.csv`; returns both paths."""

    with_failed = FAILED_COMPILE_COMMAND in detail_header
    detail_path = output_dir / f"{base_name}{DETAIL_SUFFIX}"
    summary_path = output_dir / f"{base_name}{SUMMARY_SUFFIX}"
    _write(detail_path, detail_header, [r.values(with_failed_command=with_failed) for r in detail_rows], encoding)
    _write(summary_path, summary_header, [r.values() for r in summary_rows], encoding)
    return detail_path, summary_path
