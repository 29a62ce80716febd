from __future__ import annotations

# Row builders shared by the CSV and XLSX writers.

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..config import GradingConfig
from ..domain import CompileFailure, CompileInternalError, CompileSuccess, TestResult, Verdict
from .result_table import ResultTable


DETAIL_HEADER = [
    "studentID",
    "studentName",
    "sourcePath",
    "taskName",
    "testCase",
    "arg",
    "input",
    "stat",
    "time(ms)",
    "expect",
    "stdout",
    "stderr",
    "compileError",
    "package",
    "class",
    "runCommand",
    "compileCommand",
]
FAILED_COMPILE_COMMAND = "failedCompileCommand"
MISSING_STAT = "__"


def detail_header(config: GradingConfig) -> list[str]:
    if config.allow_ambiguous_class_path:
        return [*DETAIL_HEADER, FAILED_COMPILE_COMMAND]
    return list(DETAIL_HEADER)


def _strip_cr(text: str) -> str:
    return text.replace("\r", "")


@dataclass(frozen=True)
class DetailRow:
    student_id: str
    student_name: str
    source_path: str
    task_name: str
    test_case: str
    arg: str
    input: str
    stat: str
    time_ms: float | None
    expect: str
    stdout: str
    stderr: str
    compile_error: str
    package: str
    class_name: str
    run_command: str
    compile_command: str
    failed_compile_command: str

    def values(self, *, with_failed_command: bool) -> list[object]:
        row: list[object] = [
            self.student_id,
            self.student_name,
            self.source_path,
            self.task_name,
            self.test_case,
            self.arg,
            self.input,
            self.stat,
            self.time_ms,
            self.expect,
            self.stdout,
            self.stderr,
            self.compile_error,
            self.package,
            self.class_name,
            self.run_command,
            self.compile_command,
        ]
        if with_failed_command:
            row.append(self.failed_compile_command)
        return row


def _relative_source(path: Path, workspace: Path) -> str:
    try:
        return str(path.absolute().relative_to(workspace.absolute()))
    except ValueError:
        return str(path)


def _compile_columns(result: TestResult) -> tuple[str, str, str]:
    """(compile error, compile command, failed compile command)"""

    outcome = result.unit.outcome
    if isinstance(outcome, CompileSuccess):
        return "", outcome.command, outcome.previous_command or ""
    if isinstance(outcome, CompileFailure):
        return _strip_cr(outcome.error_message), outcome.command, outcome.previous_command or ""
    assert isinstance(outcome, CompileInternalError)
    error = f"InternalError:\nUTF8:\n{outcome.primary.error}\nShiftJIS:\n{outcome.secondary.error}"
    command = f"UTF8:{outcome.primary.command}\tShiftJIS:{outcome.secondary.command}"
    return _strip_cr(error), command, ""


def _stat(result: TestResult, table: ResultTable) -> str:
    unit = result.unit
    if unit.task_name is None:
        return str(Verdict.NF)
    case_name = result.test_case.name if result.test_case is not None else None
    verdict = table.get(unit.student_id, unit.task_name, case_name, unit.source.path)
    return str(verdict) if verdict is not None else MISSING_STAT


def build_detail_row(
    result: TestResult,
    *,
    table: ResultTable,
    names: Mapping[str, str],
    workspace: Path,
) -> DetailRow:
    unit = result.unit
    case = result.test_case
    compile_error, compile_command, failed_command = _compile_columns(result)
    return DetailRow(
        student_id=unit.student_id,
        student_name=names.get(unit.student_id, ""),
        source_path=_relative_source(unit.source.path, workspace),
        task_name=unit.task_name or "",
        test_case=case.name if case is not None else "",
        arg=case.arg if case is not None else "",
        input=_strip_cr("\n".join(case.input)) if case is not None else "",
        stat=_stat(result, table),
        time_ms=result.elapsed_ms,
        expect=_strip_cr("\n".join(case.expect)) if case is not None else "",
        stdout=_strip_cr(result.stdout.rstrip()),
        stderr=_strip_cr(result.stderr.rstrip()),
        compile_error=compile_error,
        package=unit.namespace or "",
        class_name=unit.class_name or "",
        run_command=result.command,
        compile_command=compile_command,
        failed_compile_command=failed_command,
    )


def _sort_key(result: TestResult, config: GradingConfig) -> tuple:
    unit = result.unit
    task_order = config.task_order()
    if unit.task_name is None:
        task_rank = len(task_order)
        case_rank = -1
    else:
        task_rank = task_order.get(unit.task_name, len(task_order))
        task = config.tasks.get(unit.task_name)
        names = [c.name for c in task.testcase] if task is not None else []
        case_rank = names.index(result.test_case.name) if result.test_case is not None and result.test_case.name in names else -1
    return (unit.student_id, task_rank, case_rank, str(unit.source.path))


def sorted_results(results: Sequence[TestResult], config: GradingConfig) -> list[TestResult]:
    return sorted(results, key=lambda r: _sort_key(r, config))


def build_detail_rows(
    results: Sequence[TestResult],
    *,
    config: GradingConfig,
    table: ResultTable,
    names: Mapping[str, str],
    workspace: Path,
) -> list[DetailRow]:
    return [
        build_detail_row(result, table=table, names=names, workspace=workspace)
        for result in sorted_results(results, config)
    ]


def case_columns(config: GradingConfig) -> list[tuple[str, str]]:
    return [(task_name, case.name) for task_name, task in config.tasks.items() for case in task.testcase]


def summary_header(config: GradingConfig) -> list[str]:
    return [
        "ID",
        "Name",
        *config.tasks.keys(),
        *(f"{task}:{case}" for task, case in case_columns(config)),
    ]


@dataclass(frozen=True)
class SummaryRow:
    student_id: str
    student_name: str
    ratios: list[int]
    verdicts: list[Verdict]

    def values(self) -> list[object]:
        return [self.student_id, self.student_name, *self.ratios, *(str(v) for v in self.verdicts)]


def build_summary_rows(*, config: GradingConfig, table: ResultTable, names: Mapping[str, str]) -> list[SummaryRow]:
    columns = case_columns(config)
    students = sorted(set(table.students()) | set(names))
    rows: list[SummaryRow] = []
    for student_id in students:
        ratios = [
            table.accept_ratio(student_id, task_name, [c.name for c in task.testcase])
            for task_name, task in config.tasks.items()
        ]
        verdicts = [table.display_verdict(student_id, task_name, case_name) for task_name, case_name in columns]
        rows.append(SummaryRow(student_id=student_id, student_name=names.get(student_id, ""), ratios=ratios, verdicts=verdicts))
    return rows
