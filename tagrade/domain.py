from __future__ import annotations

import enum
import locale
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .config import TestCase


class Verdict(enum.Enum):
    AC = "AC"
    WA = "WA"
    TLE = "TLE"
    RE = "RE"
    CE = "CE"
    IE = "IE"
    NF = "NF"
    CF = "CF"
    UNKNOWN = "??"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_input(cls, text: str) -> "Verdict":
        # Manual judging accepts a single letter or the two-letter code, any case.
        key = text.strip().lower()
        return _MANUAL_INPUT.get(key, cls.UNKNOWN)


_MANUAL_INPUT = {
    "ac": Verdict.AC,
    "a": Verdict.AC,
    "wa": Verdict.WA,
    "w": Verdict.WA,
    "re": Verdict.RE,
    "r": Verdict.RE,
    "ce": Verdict.CE,
    "c": Verdict.CE,
}


class Encoding(enum.Enum):
    UTF8 = "utf-8"
    SHIFT_JIS = "shift_jis"
    UNKNOWN = "unknown"

    @property
    def codec(self) -> str:
        if self is Encoding.UNKNOWN:
            return locale.getpreferredencoding(False)
        return self.value

    @property
    def java_name(self) -> str:
        # Canonical charset name passed to `javac -encoding`.
        if self is Encoding.UTF8:
            return "UTF-8"
        if self is Encoding.SHIFT_JIS:
            return "Shift_JIS"
        return self.codec


# Fixed priority order for compilation attempts.
COMPILE_ENCODINGS: tuple[Encoding, Encoding] = (Encoding.UTF8, Encoding.SHIFT_JIS)


@dataclass(frozen=True)
class SourceFile:
    student_id: str
    path: Path
    # Root of the extracted sources (<student>/sources).
    base: Path
    # <workspace>/<student>
    student_root: Path

    @property
    def class_name(self) -> str:
        return self.path.stem

    def relative_path(self) -> Path:
        return self.path.relative_to(self.base)


@dataclass(frozen=True)
class CompileSuccess:
    command: str
    encoding: Encoding
    class_name: str
    namespace: str | None
    output_class_path: Path
    previous_command: str | None = None


@dataclass(frozen=True)
class CompileFailure:
    command: str
    encoding: Encoding
    error_message: str
    namespace: str | None
    previous_command: str | None = None


@dataclass(frozen=True)
class AttemptError:
    command: str
    error: str


@dataclass(frozen=True)
class CompileInternalError:
    primary: AttemptError
    secondary: AttemptError


CompileOutcome = Union[CompileSuccess, CompileFailure, CompileInternalError]


def outcome_namespace(outcome: CompileOutcome) -> str | None:
    if isinstance(outcome, (CompileSuccess, CompileFailure)):
        return outcome.namespace
    return None


def outcome_encoding(outcome: CompileOutcome) -> Encoding | None:
    if isinstance(outcome, (CompileSuccess, CompileFailure)):
        return outcome.encoding
    return None


@dataclass(frozen=True)
class CompiledSource:
    source: SourceFile
    outcome: CompileOutcome
    dst_dir: Path


@dataclass(frozen=True)
class JudgeUnit:
    compiled: CompiledSource
    # None when no task matched.
    task_name: str | None

    @property
    def student_id(self) -> str:
        return self.compiled.source.student_id

    @property
    def source(self) -> SourceFile:
        return self.compiled.source

    @property
    def outcome(self) -> CompileOutcome:
        return self.compiled.outcome

    @property
    def class_name(self) -> str | None:
        outcome = self.compiled.outcome
        return outcome.class_name if isinstance(outcome, CompileSuccess) else None

    @property
    def namespace(self) -> str | None:
        return outcome_namespace(self.compiled.outcome)


@dataclass(frozen=True)
class TestResult:
    __test__ = False  # not a pytest class

    unit: JudgeUnit
    verdict: Verdict
    test_case: TestCase | None = None
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    elapsed_ms: float | None = None
    command: str = ""
