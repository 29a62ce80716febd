from __future__ import annotations

# XLSX report: "Detail" and "Summary" sheets with per-verdict coloring.

from collections.abc import Sequence
from pathlib import Path

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.formatting.rule import CellIsRule, DataBarRule
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..domain import Verdict
from ..exceptions import SetupError
from .report_rows import FAILED_COMPILE_COMMAND, DetailRow, SummaryRow


XLSX_SUFFIX = ".xlsx"
TIME_FORMAT = "#.000"
DATA_BAR_COLOR = "638EC6"
MAX_CELL_CHARS = 32767
MAX_COLUMN_WIDTH = 60
WRAPPED_COLUMNS = ("stdout", "stderr", "compileError")

# verdict -> (background, font)
VERDICT_COLORS: dict[Verdict, tuple[str, str]] = {
    Verdict.AC: ("C6EFCE", "006100"),
    Verdict.WA: ("FFEB9C", "9C5700"),
    Verdict.TLE: ("FFEB9C", "9C5700"),
    Verdict.RE: ("FFC7CE", "9C0006"),
    Verdict.CE: ("FFC7CE", "9C0006"),
    Verdict.IE: ("FFFFFF", "000000"),
    Verdict.NF: ("BFBFBF", "000000"),
}


def _clean(value: object) -> object:
    # openpyxl refuses control characters; Excel caps cell text length.
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)[:MAX_CELL_CHARS]
    return value


def _range(first_col: int, first_row: int, last_col: int, last_row: int) -> str:
    return f"{get_column_letter(first_col)}{first_row}:{get_column_letter(last_col)}{last_row}"


def add_verdict_rules(ws: Worksheet, cell_range: str) -> None:
    for verdict, (background, font) in VERDICT_COLORS.items():
        ws.conditional_formatting.add(
            cell_range,
            CellIsRule(
                operator="equal",
                formula=[f'"{verdict}"'],
                fill=PatternFill(start_color=background, end_color=background, fill_type="solid"),
                font=Font(color=font),
            ),
        )


def _fit_columns(ws: Worksheet) -> None:
    for idx, column in enumerate(ws.iter_cols(values_only=True), start=1):
        longest = max((len(str(v).split("\n", 1)[0]) for v in column if v is not None), default=0)
        ws.column_dimensions[get_column_letter(idx)].width = min(longest + 2, MAX_COLUMN_WIDTH)


def fill_detail_sheet(ws: Worksheet, header: Sequence[str], rows: Sequence[DetailRow]) -> None:
    with_failed = FAILED_COMPILE_COMMAND in header
    ws.append(list(header))
    time_col = header.index("time(ms)") + 1
    wrapped = {header.index(name) + 1 for name in WRAPPED_COLUMNS}
    wrap = Alignment(wrap_text=True, vertical="top")
    for row in rows:
        ws.append([_clean(v) for v in row.values(with_failed_command=with_failed)])
        row_idx = ws.max_row
        ws.cell(row=row_idx, column=time_col).number_format = TIME_FORMAT
        for col in wrapped:
            ws.cell(row=row_idx, column=col).alignment = wrap

    _fit_columns(ws)
    last_row = len(rows) + 1
    ws.auto_filter.ref = _range(1, 1, len(header), last_row)
    if rows:
        stat_col = header.index("stat") + 1
        add_verdict_rules(ws, _range(stat_col, 2, stat_col, last_row))


def fill_summary_sheet(ws: Worksheet, header: Sequence[str], rows: Sequence[SummaryRow], *, task_count: int) -> None:
    ws.append(list(header))
    for row in rows:
        ws.append([_clean(v) for v in row.values()])

    _fit_columns(ws)
    last_row = len(rows) + 1
    ws.auto_filter.ref = _range(1, 1, len(header), last_row)
    if not rows:
        return
    if task_count:
        ws.conditional_formatting.add(
            _range(3, 2, 2 + task_count, last_row),
            DataBarRule(start_type="num", start_value=0, end_type="num", end_value=100, color=DATA_BAR_COLOR),
        )
    if len(header) > 2 + task_count:
        add_verdict_rules(ws, _range(3 + task_count, 2, len(header), last_row))


def write_excel_report(
    output_dir: Path,
    base_name: str,
    *,
    detail_header: Sequence[str],
    detail_rows: Sequence[DetailRow],
    summary_header: Sequence[str],
    summary_rows: Sequence[SummaryRow],
    task_count: int,
) -> Path:
    wb = Workbook()
    detail = wb.active
    detail.title = "Detail"
    fill_detail_sheet(detail, detail_header, detail_rows)
    fill_summary_sheet(wb.create_sheet("Summary"), summary_header, summary_rows, task_count=task_count)

    path = output_dir / f"{base_name}{XLSX_SUFFIX}"
    try:
        wb.save(path)
    except OSError as exc:
        raise SetupError(f"cannot write report {path}: {exc}") from exc
    return path
