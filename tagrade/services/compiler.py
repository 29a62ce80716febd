from __future__ import annotations

# Compile one submitted source file with javac, trying each encoding in turn.
#
# Attempt outcomes:
# - exit 0 and no diagnostics         -> Success (final)
# - unmappable-character diagnostic   -> inconclusive, try the next encoding
# - spawn failure / unexpected error  -> inconclusive, try the next encoding
# - any other diagnostic or exit code -> Failure (final, not retried)
# If no attempt is final, the outcome is InternalError carrying both attempts.

import logging
import shlex
import traceback
from dataclasses import dataclass
from pathlib import Path

from ..domain import (
    COMPILE_ENCODINGS,
    AttemptError,
    CompileFailure,
    CompileInternalError,
    CompileOutcome,
    CompileSuccess,
    Encoding,
    SourceFile,
)
from ..settings import SETTINGS
from .program import ProgramRun, run_program
from .source_scan import resolve_namespace


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileAttempt:
    command: str
    encoding: Encoding
    namespace: str | None
    exit_code: int | None = None
    diagnostics: str = ""
    # Set when the process could not be run at all.
    error: str | None = None
    previous_command: str | None = None

    @property
    def encoding_error(self) -> bool:
        return SETTINGS.unmappable_marker in self.diagnostics

    @property
    def inconclusive(self) -> bool:
        if self.error is not None:
            return True
        return self.encoding_error


def resolve_class_path(source_dir: Path, namespace: str | None) -> Path:
    """Walk up from the file's directory, one level per trailing package segment.

    Returns the first directory whose name does not match its segment, or the
    directory above the last matched segment.
    """

    if not namespace:
        return source_dir
    current = source_dir
    for segment in reversed([s for s in namespace.split(".") if s]):
        if current.name != segment:
            return current
        current = current.parent
    return current


def compile_command(*, source: SourceFile, encoding: Encoding, class_path: Path, dst_dir: Path) -> list[str]:
    return [
        SETTINGS.javac_command,
        "-J-Duser.language=en",
        "-d",
        str(dst_dir.absolute()),
        "-encoding",
        encoding.java_name,
        "-cp",
        str(class_path.absolute()),
        str(source.path.absolute()),
    ]


def invoke_compiler(argv: list[str], timeout_ms: int) -> ProgramRun:
    return run_program(argv=argv, time_limit_ms=timeout_ms, max_stream_bytes=SETTINGS.max_stream_bytes)


def _describe_failure(run: ProgramRun, diagnostics: str, timeout_ms: int) -> str:
    if diagnostics.strip():
        return diagnostics
    if run.timeout:
        return f"compilation timed out after {timeout_ms} ms"
    return f"javac exited with status {run.exit_code}"


def attempt_compile(
    *,
    source: SourceFile,
    encoding: Encoding,
    dst_dir: Path,
    timeout_ms: int,
    allow_ambiguous_class_path: bool = False,
    class_path: Path | None = None,
    previous_command: str | None = None,
) -> CompileAttempt:
    namespace = resolve_namespace(source.path, encoding)
    if class_path is None:
        class_path = resolve_class_path(source.path.parent, namespace)
    argv = compile_command(source=source, encoding=encoding, class_path=class_path, dst_dir=dst_dir)
    command = shlex.join(argv)

    try:
        run = invoke_compiler(argv, timeout_ms)
    except Exception:  # noqa: BLE001
        # Spawn failure or unexpected error; the caller decides whether to retry.
        return CompileAttempt(
            command=command,
            encoding=encoding,
            namespace=namespace,
            error=traceback.format_exc(),
            previous_command=previous_command,
        )

    diagnostics = (run.stderr + run.stdout).decode(encoding.codec, errors="replace")
    if run.exit_code != 0 and not run.timeout and previous_command is None and allow_ambiguous_class_path:
        if SETTINGS.ambiguous_classpath_marker in diagnostics and SETTINGS.unmappable_marker not in diagnostics:
            logger.debug("retrying %s with its own directory as classpath", source.path)
            return attempt_compile(
                source=source,
                encoding=encoding,
                dst_dir=dst_dir,
                timeout_ms=timeout_ms,
                allow_ambiguous_class_path=False,
                class_path=source.path.parent,
                previous_command=command,
            )

    return CompileAttempt(
        command=command,
        encoding=encoding,
        namespace=namespace,
        exit_code=run.exit_code,
        diagnostics=diagnostics if run.exit_code == 0 else _describe_failure(run, diagnostics, timeout_ms),
        previous_command=previous_command,
    )


def finalize_attempt(attempt: CompileAttempt, *, source: SourceFile, dst_dir: Path) -> CompileOutcome | None:
    if attempt.inconclusive:
        return None
    if attempt.exit_code == 0 and not attempt.diagnostics.strip():
        return CompileSuccess(
            command=attempt.command,
            encoding=attempt.encoding,
            class_name=source.class_name,
            namespace=attempt.namespace,
            output_class_path=dst_dir,
            previous_command=attempt.previous_command,
        )
    return CompileFailure(
        command=attempt.command,
        encoding=attempt.encoding,
        error_message=attempt.diagnostics,
        namespace=attempt.namespace,
        previous_command=attempt.previous_command,
    )


def _attempt_error(attempt: CompileAttempt) -> AttemptError:
    return AttemptError(command=attempt.command, error=attempt.error or attempt.diagnostics)


def compile_source(
    source: SourceFile,
    *,
    dst_dir: Path,
    timeout_ms: int,
    allow_ambiguous_class_path: bool = False,
) -> CompileOutcome:
    """Compile `source` into `dst_dir`; never raises for per-file problems."""

    try:
        dst_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        detail = traceback.format_exc()
        return CompileInternalError(
            primary=AttemptError(command="", error=detail),
            secondary=AttemptError(command="", error=detail),
        )

    attempts: list[CompileAttempt] = []
    for encoding in COMPILE_ENCODINGS:
        attempt = attempt_compile(
            source=source,
            encoding=encoding,
            dst_dir=dst_dir,
            timeout_ms=timeout_ms,
            allow_ambiguous_class_path=allow_ambiguous_class_path,
        )
        attempts.append(attempt)
        outcome = finalize_attempt(attempt, source=source, dst_dir=dst_dir)
        if outcome is not None:
            return outcome
        logger.debug("compile of %s inconclusive under %s", source.path, encoding.java_name)

    primary, secondary = attempts
    logger.warning(
        "internal compile error for %s:\n%s\n%s",
        source.path,
        _attempt_error(primary).error,
        _attempt_error(secondary).error,
    )
    return CompileInternalError(primary=_attempt_error(primary), secondary=_attempt_error(secondary))
