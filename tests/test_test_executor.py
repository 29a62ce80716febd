from __future__ import annotations

from pathlib import Path

from conftest import canned, write_source

from tagrade.config import TestCase
from tagrade.domain import CompiledSource, CompileFailure, CompileSuccess, Encoding, JudgeUnit, Verdict
from tagrade.services import test_executor
from tagrade.services.test_executor import build_run_command, classify_run, output_matches, stdin_payload


def _unit(workspace: Path, *, namespace: str | None = None, success: bool = True) -> JudgeUnit:
    source = write_source(workspace, "s0000001", "Main.java", "class Main {}\n")
    dst = source.student_root / "compile"
    if success:
        outcome = CompileSuccess(
            command="javac Main.java",
            encoding=Encoding.UTF8,
            class_name="Main",
            namespace=namespace,
            output_class_path=dst,
        )
    else:
        outcome = CompileFailure(command="javac Main.java", encoding=Encoding.UTF8, error_message="boom", namespace=None)
    return JudgeUnit(compiled=CompiledSource(source=source, outcome=outcome, dst_dir=dst), task_name="ex1")


def test_output_matching_collapses_line_breaks() -> None:
    case = TestCase(name="t", expect=[r"1 2 3 ?"])
    assert output_matches(case, "1\n2\n3\n")
    assert output_matches(TestCase(name="t", expect=["a  b"]), "a\r\nb")
    assert not output_matches(case, "1 2 3 4")
    assert not output_matches(TestCase(name="t"), "anything")


def test_classification_precedence() -> None:
    case = TestCase(name="t", expect=["ok"])
    assert classify_run(timed_out=True, stdout="ok", stderr="Exception in thread", test_case=case) is Verdict.TLE
    assert classify_run(timed_out=False, stdout="ok", stderr="Exception in thread \"main\"", test_case=case) is Verdict.RE
    assert classify_run(timed_out=False, stdout="ok", stderr="Error: Main method not found in class Main", test_case=case) is Verdict.RE
    assert classify_run(timed_out=False, stdout="ng", stderr="", test_case=case) is Verdict.WA
    assert classify_run(timed_out=False, stdout="ok", stderr="", test_case=case) is Verdict.AC


def test_stdin_payload_terminates_each_line() -> None:
    assert stdin_payload(TestCase(name="t", input=["1", "2"])) == b"1\n2\n"
    assert stdin_payload(TestCase(name="t")) == b""


def test_stdin_payload_keeps_existing_line_breaks() -> None:
    assert stdin_payload(TestCase(name="t", input=["1\n", "2"])) == b"1\n2\n"
    assert stdin_payload(TestCase(name="t", input=["a\nb\n"])) == b"a\nb\n"


def test_run_command_uses_qualified_name_and_args(workspace: Path) -> None:
    unit = _unit(workspace, namespace="jp.ac")
    argv = build_run_command(unit.outcome, TestCase(name="t", arg="3 'a b'"))
    assert argv[1:3] == ["-Duser.language=en", "-classpath"]
    assert argv[4:] == ["jp.ac.Main", "3", "a b"]


def test_run_test_decodes_shift_jis_output(workspace: Path, fake_java) -> None:
    fake_java.behaviors["Main"] = canned(stdout="こんにちは\n")
    result = test_executor.execute_test(_unit(workspace), TestCase(name="t", expect=["こんにちは "]), 1000)
    assert result.verdict is Verdict.AC
    assert result.stdout == "こんにちは\n"
    assert result.command.startswith("java ")


def test_run_test_reports_tle(workspace: Path, fake_java) -> None:
    fake_java.behaviors["Main"] = canned(exit_code=-9, timeout=True)
    result = test_executor.execute_test(_unit(workspace), TestCase(name="t", expect=[".*"]), 1000)
    assert result.verdict is Verdict.TLE


def test_compile_failure_yields_ce_without_running(workspace: Path, fake_java) -> None:
    result = test_executor.execute_test(_unit(workspace, success=False), TestCase(name="t"), 1000)
    assert result.verdict is Verdict.CE
    assert fake_java.calls == []


def test_unexpected_error_becomes_internal_error(workspace: Path, monkeypatch) -> None:
    def broken(argv, input_bytes, timeout_ms):
        raise OSError("java not found")

    monkeypatch.setattr(test_executor, "invoke_program", broken)
    result = test_executor.execute_test(_unit(workspace), TestCase(name="t"), 1000)
    assert result.verdict is Verdict.IE
    assert result.stderr.startswith("internal error:")
    assert "java not found" in result.stderr
