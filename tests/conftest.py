from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from tagrade.config import GradingConfig, parse_config
from tagrade.domain import SourceFile
from tagrade.services import compiler, test_executor
from tagrade.services.program import ProgramRun


def make_config(tasks: dict, **overrides) -> GradingConfig:
    raw = {"compileTimeout": 5000, "runningTimeout": 2000, "tasks": tasks}
    raw.update(overrides)
    return parse_config(raw)


def write_source(workspace: Path, student_id: str, rel: str, text: str, *, encoding: str = "utf-8") -> SourceFile:
    student_root = workspace / student_id
    base = student_root / "sources"
    path = base / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode(encoding))
    return SourceFile(student_id=student_id, path=path, base=base, student_root=student_root)


@dataclass
class FakeJavac:
    """Stands in for javac: decides the outcome from the source bytes."""

    calls: list[list[str]] = field(default_factory=list)

    def __call__(self, argv: list[str], timeout_ms: int) -> ProgramRun:
        self.calls.append(list(argv))
        encoding = argv[argv.index("-encoding") + 1]
        data = Path(argv[-1]).read_bytes()
        codec = "utf-8" if encoding == "UTF-8" else "shift_jis"
        try:
            data.decode(codec)
        except UnicodeDecodeError:
            return _run(argv, 1, stderr=b"Main.java:1: error: unmappable character (0x83) for encoding " + encoding.encode())
        if b"SYNTAX ERROR" in data:
            return _run(argv, 1, stderr=b"Main.java:3: error: ';' expected\n1 error\n")
        return _run(argv, 0)

    def encodings(self) -> list[str]:
        return [argv[argv.index("-encoding") + 1] for argv in self.calls]


@dataclass
class FakeJava:
    """Stands in for java: per-class canned behavior, default prints "Hello"."""

    behaviors: dict[str, Callable[[list[str], bytes], ProgramRun]] = field(default_factory=dict)
    calls: list[list[str]] = field(default_factory=list)

    def __call__(self, argv: list[str], input_bytes: bytes, timeout_ms: int) -> ProgramRun:
        self.calls.append(list(argv))
        class_name = argv[4]
        behavior = self.behaviors.get(class_name)
        if behavior is not None:
            return behavior(argv, input_bytes)
        return _run(argv, 0, stdout=b"Hello\n")


def _run(argv: list[str], exit_code: int, *, stdout: bytes = b"", stderr: bytes = b"", timeout: bool = False) -> ProgramRun:
    return ProgramRun(argv=argv, exit_code=exit_code, timeout=timeout, elapsed_ms=1.5, stdout=stdout, stderr=stderr)


def canned(*, stdout: str = "", stderr: str = "", exit_code: int = 0, timeout: bool = False) -> Callable[[list[str], bytes], ProgramRun]:
    def behavior(argv: list[str], input_bytes: bytes) -> ProgramRun:
        return _run(argv, exit_code, stdout=stdout.encode("shift_jis"), stderr=stderr.encode("shift_jis"), timeout=timeout)

    return behavior


@pytest.fixture
def fake_javac(monkeypatch) -> FakeJavac:
    fake = FakeJavac()
    monkeypatch.setattr(compiler, "invoke_compiler", fake)
    return fake


@pytest.fixture
def fake_java(monkeypatch) -> FakeJava:
    fake = FakeJava()
    monkeypatch.setattr(test_executor, "invoke_program", fake)
    return fake


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws
