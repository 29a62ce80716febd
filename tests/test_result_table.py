from __future__ import annotations

import itertools
from pathlib import Path

from tagrade.config import TestCase
from tagrade.domain import (
    CompiledSource,
    CompileSuccess,
    Encoding,
    JudgeUnit,
    SourceFile,
    TestResult,
    Verdict,
)
from tagrade.services.result_table import aggregate


def _result(student: str, file: str, task: str | None, case: str | None, verdict: Verdict) -> TestResult:
    root = Path("/ws") / student
    source = SourceFile(student_id=student, path=root / "sources" / file, base=root / "sources", student_root=root)
    outcome = CompileSuccess(command="", encoding=Encoding.UTF8, class_name=Path(file).stem, namespace=None, output_class_path=root)
    unit = JudgeUnit(compiled=CompiledSource(source=source, outcome=outcome, dst_dir=root), task_name=task)
    return TestResult(unit=unit, verdict=verdict, test_case=TestCase(name=case) if case is not None else None)


def test_single_contributor_is_displayed() -> None:
    table = aggregate([_result("s1", "A.java", "ex1", "t1", Verdict.WA)])
    assert table.display_verdict("s1", "ex1", "t1") is Verdict.WA
    assert table.get("s1", "ex1", "t1", Path("/ws/s1/sources/A.java")) is Verdict.WA
    assert table.students() == ("s1",)


def test_two_files_for_one_task_conflict() -> None:
    table = aggregate(
        [
            _result("s1", "A.java", "ex1", "t1", Verdict.AC),
            _result("s1", "B.java", "ex1", "t1", Verdict.AC),
        ]
    )
    assert table.display_verdict("s1", "ex1", "t1") is Verdict.CF
    assert table.accept_ratio("s1", "ex1", ["t1"]) == 0
    # Raw per-file entries stay available for the detail report.
    assert table.get("s1", "ex1", "t1", Path("/ws/s1/sources/B.java")) is Verdict.AC


def test_missing_result_is_not_found() -> None:
    table = aggregate([_result("s1", "A.java", "ex1", "t1", Verdict.AC)])
    assert table.display_verdict("s1", "ex2", "t1") is Verdict.NF
    assert table.display_verdict("s2", "ex1", "t1") is Verdict.NF


def test_task_level_entry_is_the_fallback() -> None:
    table = aggregate([_result("s1", "A.java", "ex1", None, Verdict.UNKNOWN)])
    assert table.display_verdict("s1", "ex1", "t1") is Verdict.UNKNOWN


def test_accept_ratio_is_floored() -> None:
    table = aggregate(
        [
            _result("s1", "A.java", "ex1", "t1", Verdict.AC),
            _result("s1", "A.java", "ex1", "t2", Verdict.WA),
            _result("s1", "A.java", "ex1", "t3", Verdict.AC),
        ]
    )
    assert table.accept_ratio("s1", "ex1", ["t1", "t2", "t3"]) == 66
    assert table.accept_ratio("s1", "ex1", []) == 0


def test_aggregation_is_order_independent() -> None:
    results = [
        _result("s1", "A.java", "ex1", "t1", Verdict.AC),
        _result("s1", "B.java", "ex1", "t1", Verdict.WA),
        _result("s2", "A.java", "ex2", "t1", Verdict.RE),
        _result("s2", "C.java", None, None, Verdict.NF),
    ]
    expected = aggregate(results)
    for perm in itertools.permutations(results):
        assert aggregate(list(perm)) == expected
    assert len(expected) == 2
