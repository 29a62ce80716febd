from __future__ import annotations

from pathlib import Path

from tagrade.config import TestCase
from tagrade.domain import CompiledSource, CompileSuccess, Encoding, JudgeUnit, SourceFile, TestResult, Verdict
from tagrade.services.manual_judge import judge_manually, read_verdict


def _answers(*texts: str):
    pending = list(texts)

    def input_fn(prompt: str) -> str:
        assert prompt == "judge?: "
        if not pending:
            raise EOFError
        return pending.pop(0)

    return input_fn


def _result() -> TestResult:
    root = Path("/ws/s1")
    source = SourceFile(student_id="s1", path=root / "sources" / "Main.java", base=root / "sources", student_root=root)
    outcome = CompileSuccess(command="", encoding=Encoding.UTF8, class_name="Main", namespace=None, output_class_path=root)
    unit = JudgeUnit(compiled=CompiledSource(source=source, outcome=outcome, dst_dir=root), task_name="ex1")
    return TestResult(unit=unit, verdict=Verdict.WA, test_case=TestCase(name="t1", expect=["42"]), stdout="41\n", stderr="")


def test_read_verdict_accepts_short_and_long_codes() -> None:
    for text, verdict in [("a", Verdict.AC), ("AC", Verdict.AC), ("w", Verdict.WA), ("Re", Verdict.RE), ("c", Verdict.CE)]:
        assert read_verdict(input_fn=_answers(text), print_fn=lambda *a: None) is verdict


def test_read_verdict_reprompts_on_invalid_input() -> None:
    printed: list[str] = []
    verdict = read_verdict(input_fn=_answers("x", "tle", "a"), print_fn=lambda *a: printed.append(" ".join(map(str, a))))
    assert verdict is Verdict.AC
    assert printed == ["invalid input", "invalid input"]


def test_judge_manually_shows_expected_and_actual() -> None:
    printed: list[str] = []
    judged = judge_manually(_result(), input_fn=_answers("a"), print_fn=lambda *a: printed.append(" ".join(map(str, a))))

    assert judged.verdict is Verdict.AC
    assert judged.stdout == "41\n"
    assert "expected:" in printed and "42" in printed
    assert "stdout:" in printed and "41" in printed
    assert "stderr:" not in printed


def test_end_of_input_keeps_automatic_verdict() -> None:
    printed: list[str] = []
    judged = judge_manually(_result(), input_fn=_answers(), print_fn=lambda *a: printed.append(" ".join(map(str, a))))
    assert judged.verdict is Verdict.WA
    assert "input error" in printed
