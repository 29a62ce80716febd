from __future__ import annotations

# Batch orchestration.
#
# Phase 1 compiles every discovered source file concurrently. Phase 2 classifies
# each file against the configured tasks, plans the work per judge unit, and runs
# the planned tests either concurrently or strictly in plan order (serial mode,
# required for manual judging). Results are returned in plan order; nothing
# downstream depends on completion order.

import logging
import traceback
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..config import GradingConfig, TestCase
from ..domain import (
    AttemptError,
    CompiledSource,
    CompileInternalError,
    CompileSuccess,
    JudgeUnit,
    SourceFile,
    TestResult,
    Verdict,
    outcome_encoding,
)
from ..exceptions import ConfigError
from . import compiler, manual_judge, source_scan, test_executor
from .progress import ProgressPrinter
from .result_table import ResultTable, aggregate
from .submissions import compile_dst_dir


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    serial: bool = False
    manual_judge: bool = False
    keep_original_directory: bool = True
    show_progress: bool = True
    max_workers: int | None = None

    def __post_init__(self) -> None:
        if self.manual_judge and not self.serial:
            raise ConfigError("manual judging requires serial mode")


@dataclass(frozen=True)
class PlannedTest:
    unit: JudgeUnit
    test_case: TestCase | None
    # Set when no process is needed (NF / CE / unknown).
    synthesized: Verdict | None = None


@dataclass(frozen=True)
class BatchResult:
    compiled: list[CompiledSource]
    units: list[JudgeUnit]
    results: list[TestResult]
    table: ResultTable


def _progress(total: int, options: RunOptions) -> ProgressPrinter | None:
    return ProgressPrinter(total) if options.show_progress else None


def _compile_one(source: SourceFile, config: GradingConfig, options: RunOptions) -> CompiledSource:
    dst_dir = compile_dst_dir(source, keep_original_directory=options.keep_original_directory)
    try:
        outcome = compiler.compile_source(
            source,
            dst_dir=dst_dir,
            timeout_ms=config.compile_timeout,
            allow_ambiguous_class_path=config.allow_ambiguous_class_path,
        )
    except Exception:  # noqa: BLE001
        detail = traceback.format_exc()
        logger.warning("unexpected compile failure for %s: %s", source.path, detail)
        outcome = CompileInternalError(
            primary=AttemptError(command="", error=detail),
            secondary=AttemptError(command="", error=detail),
        )
    return CompiledSource(source=source, outcome=outcome, dst_dir=dst_dir)


def compile_all(sources: Sequence[SourceFile], config: GradingConfig, options: RunOptions) -> list[CompiledSource]:
    printer = _progress(len(sources), options)

    def task(source: SourceFile) -> CompiledSource:
        compiled = _compile_one(source, config, options)
        if printer is not None:
            printer.add()
        return compiled

    with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
        return list(pool.map(task, sources))


def classify_compiled(compiled: CompiledSource, config: GradingConfig) -> list[str]:
    # Classify under the encoding javac accepted. An internal error leaves no
    # known-good encoding, so such a file matches no task.
    encoding = outcome_encoding(compiled.outcome)
    if encoding is None:
        return []
    try:
        matched = source_scan.classify_source(compiled.source.path, encoding, config.tasks)
    except OSError as exc:
        logger.warning("cannot read %s for classification: %s", compiled.source.path, exc)
        return []
    return source_scan.ordered_task_names(matched, config.tasks)


def build_judge_units(compiled: Sequence[CompiledSource], config: GradingConfig) -> list[JudgeUnit]:
    units: list[JudgeUnit] = []
    for item in compiled:
        names = classify_compiled(item, config)
        if not names:
            units.append(JudgeUnit(compiled=item, task_name=None))
            continue
        units.extend(JudgeUnit(compiled=item, task_name=name) for name in names)
    return units


def plan_unit(unit: JudgeUnit, config: GradingConfig) -> list[PlannedTest]:
    if unit.task_name is None:
        return [PlannedTest(unit=unit, test_case=None, synthesized=Verdict.NF)]
    task = config.tasks.get(unit.task_name)
    cases = list(task.testcase) if task is not None else []
    if not isinstance(unit.outcome, CompileSuccess):
        if not cases:
            return [PlannedTest(unit=unit, test_case=None, synthesized=Verdict.CE)]
        return [PlannedTest(unit=unit, test_case=case, synthesized=Verdict.CE) for case in cases]
    if not cases:
        return [PlannedTest(unit=unit, test_case=None, synthesized=Verdict.UNKNOWN)]
    return [PlannedTest(unit=unit, test_case=case) for case in cases]


def plan_tests(units: Sequence[JudgeUnit], config: GradingConfig) -> list[PlannedTest]:
    return [planned for unit in units for planned in plan_unit(unit, config)]


def execute_planned(planned: PlannedTest, config: GradingConfig) -> TestResult:
    if planned.synthesized is not None:
        return TestResult(unit=planned.unit, verdict=planned.synthesized, test_case=planned.test_case)
    assert planned.test_case is not None
    return test_executor.execute_test(planned.unit, planned.test_case, config.running_timeout)


def run_concurrent(plans: Sequence[PlannedTest], config: GradingConfig, options: RunOptions) -> list[TestResult]:
    printer = _progress(len(plans), options)

    def task(planned: PlannedTest) -> TestResult:
        result = execute_planned(planned, config)
        if printer is not None:
            printer.add()
        return result

    with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
        return list(pool.map(task, plans))


def _running_label(planned: PlannedTest) -> str:
    unit = planned.unit
    outcome = unit.outcome
    name = test_executor.qualified_class_name(outcome) if isinstance(outcome, CompileSuccess) else unit.source.class_name
    case_name = planned.test_case.name if planned.test_case is not None else ""
    return f"running: {unit.student_id}:{name}  \t{unit.task_name}:{case_name}\t-> "


def run_serial(
    plans: Sequence[PlannedTest],
    config: GradingConfig,
    options: RunOptions,
    *,
    input_fn: Callable[[str], str] = input,
) -> list[TestResult]:
    results: list[TestResult] = []
    for planned in plans:
        runs_process = planned.synthesized is None
        if runs_process:
            print(_running_label(planned), end="", flush=True)
        result = execute_planned(planned, config)
        if runs_process and options.manual_judge:
            result = manual_judge.judge_manually(result, input_fn=input_fn)
        elif runs_process:
            print(result.verdict, flush=True)
        results.append(result)
    return results


def run_tests(
    units: Sequence[JudgeUnit],
    config: GradingConfig,
    options: RunOptions,
    *,
    input_fn: Callable[[str], str] = input,
) -> list[TestResult]:
    plans = plan_tests(units, config)
    if options.serial:
        return run_serial(plans, config, options, input_fn=input_fn)
    return run_concurrent(plans, config, options)


def run_batch(
    sources: Sequence[SourceFile],
    config: GradingConfig,
    options: RunOptions,
    *,
    compiled: Sequence[CompiledSource] | None = None,
    input_fn: Callable[[str], str] = input,
) -> BatchResult:
    """Compile (unless `compiled` is given), classify, test and aggregate."""

    if compiled is None:
        logger.info("compiling %d source files", len(sources))
        compiled = compile_all(sources, config, options)
    units = build_judge_units(compiled, config)
    logger.info("running tests for %d judge units", len(units))
    results = run_tests(units, config, options, input_fn=input_fn)
    return BatchResult(compiled=list(compiled), units=units, results=results, table=aggregate(results))
