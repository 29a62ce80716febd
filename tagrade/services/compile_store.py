from __future__ import annotations

# SQLite persistence of compile results, keyed by an opaque integer id, so a
# later run can judge again without recompiling every submission.

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

from sqlalchemy import delete, select

from ..db import db_session, init_db, make_engine, make_session_factory
from ..domain import (
    AttemptError,
    CompiledSource,
    CompileFailure,
    CompileInternalError,
    CompileOutcome,
    CompileSuccess,
    Encoding,
    JudgeUnit,
    SourceFile,
)
from ..models import CompileResultRow, JudgeUnitRow, Student


logger = logging.getLogger(__name__)

STATUS_SUCCESS = "Success"
STATUS_FAILURE = "Failure"
STATUS_ERROR = "Error"


def to_row(compiled: CompiledSource) -> CompileResultRow:
    source = compiled.source
    row = CompileResultRow(
        java_source=str(source.path),
        student_base=str(source.student_root),
        student_id=source.student_id,
        base=str(source.base),
        dst_directory=str(compiled.dst_dir),
    )
    outcome = compiled.outcome
    if isinstance(outcome, CompileSuccess):
        row.compile_status = STATUS_SUCCESS
        row.compile_command = outcome.command
        row.encoding = outcome.encoding.name
        row.class_name = outcome.class_name
        row.package_name = outcome.namespace
        row.prev_compile_command = outcome.previous_command
    elif isinstance(outcome, CompileFailure):
        row.compile_status = STATUS_FAILURE
        row.compile_command = outcome.command
        row.encoding = outcome.encoding.name
        row.error_message = outcome.error_message
        row.package_name = outcome.namespace
        row.prev_compile_command = outcome.previous_command
    else:
        row.compile_status = STATUS_ERROR
        row.utf8_error_command = outcome.primary.command
        row.utf8_error = outcome.primary.error
        row.sjis_error_command = outcome.secondary.command
        row.sjis_error = outcome.secondary.error
    return row


def _outcome_from_row(row: CompileResultRow) -> CompileOutcome:
    status = row.compile_status
    if status == STATUS_SUCCESS:
        return CompileSuccess(
            command=row.compile_command,
            encoding=Encoding[row.encoding],
            class_name=row.class_name,
            namespace=row.package_name,
            output_class_path=Path(row.dst_directory),
            previous_command=row.prev_compile_command,
        )
    if status == STATUS_FAILURE:
        return CompileFailure(
            command=row.compile_command,
            encoding=Encoding[row.encoding],
            error_message=row.error_message,
            namespace=row.package_name,
            previous_command=row.prev_compile_command,
        )
    if status == STATUS_ERROR:
        return CompileInternalError(
            primary=AttemptError(command=row.utf8_error_command, error=row.utf8_error),
            secondary=AttemptError(command=row.sjis_error_command, error=row.sjis_error),
        )
    raise ValueError(f"unknown compile status {status!r}")


def from_row(row: CompileResultRow) -> CompiledSource:
    try:
        outcome = _outcome_from_row(row)
    except (KeyError, ValueError) as exc:
        logger.warning("compile_result %s cannot be decoded: %s", row.id, exc)
        outcome = CompileInternalError(
            primary=AttemptError(command="", error="DB error: deserialize error"),
            secondary=AttemptError(command="", error=""),
        )
    source = SourceFile(
        student_id=row.student_id,
        path=Path(row.java_source),
        base=Path(row.base),
        student_root=Path(row.student_base),
    )
    return CompiledSource(source=source, outcome=outcome, dst_dir=Path(row.dst_directory))


class CompileStore:
    """Key-value store of compile results plus the student roster."""

    def __init__(self, db_path: Path):
        self._engine = make_engine(db_path)
        self._factory = make_session_factory(self._engine)
        init_db(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def reset(self) -> None:
        init_db(self._engine, reset=True)

    def add_students(self, students: Mapping[str, str]) -> None:
        with db_session(self._factory) as session:
            for student_id, name in students.items():
                session.merge(Student(id=student_id, name=name))

    def student_names(self) -> dict[str, str]:
        with db_session(self._factory) as session:
            return {s.id: s.name for s in session.scalars(select(Student).order_by(Student.id))}

    def add_compile_results(self, compiled: Iterable[CompiledSource]) -> list[int]:
        rows = [to_row(item) for item in compiled]
        with db_session(self._factory) as session:
            session.add_all(rows)
            session.flush()
            return [row.id for row in rows]

    def iter_compile_results(self) -> Iterator[CompiledSource]:
        with db_session(self._factory) as session:
            rows = list(session.scalars(select(CompileResultRow).order_by(CompileResultRow.id)))
        for row in rows:
            yield from_row(row)

    def ids_by_source(self) -> dict[Path, int]:
        with db_session(self._factory) as session:
            rows = session.execute(select(CompileResultRow.java_source, CompileResultRow.id))
            return {Path(source): result_id for source, result_id in rows}

    def add_judge_units(self, units: Iterable[JudgeUnit]) -> None:
        """Record this run's judge units, replacing those of an earlier run."""

        ids = self.ids_by_source()
        with db_session(self._factory) as session:
            session.execute(delete(JudgeUnitRow))
            for unit in units:
                result_id = ids.get(unit.source.path)
                if result_id is None:
                    logger.debug("no stored compile result for %s", unit.source.path)
                    continue
                session.add(JudgeUnitRow(compile_result_id=result_id, task_name=unit.task_name))

