from __future__ import annotations

# Aggregated verdicts keyed by (student, task, test case), with one verdict per
# contributing source file. More than one contributing file means the student
# submitted conflicting candidates for the same task (CF).

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from ..domain import TestResult, Verdict


@dataclass(frozen=True)
class ResultKey:
    student_id: str
    task_name: str | None
    test_case: str | None


class ResultTable:
    """Read-only view built once by `aggregate()`."""

    def __init__(self, entries: Mapping[ResultKey, Mapping[Path, Verdict]]):
        self._entries: Mapping[ResultKey, Mapping[Path, Verdict]] = MappingProxyType(
            {key: MappingProxyType(dict(value)) for key, value in entries.items()}
        )
        self._students = tuple(sorted({key.student_id for key in entries}))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResultTable):
            return NotImplemented
        return {k: dict(v) for k, v in self._entries.items()} == {k: dict(v) for k, v in other._entries.items()}

    def students(self) -> tuple[str, ...]:
        return self._students

    def contributions(self, student_id: str, task_name: str | None, test_case: str | None) -> Mapping[Path, Verdict]:
        return self._entries.get(ResultKey(student_id, task_name, test_case), MappingProxyType({}))

    def get(self, student_id: str, task_name: str | None, test_case: str | None, source: Path) -> Verdict | None:
        return self.contributions(student_id, task_name, test_case).get(source)

    def display_verdict(self, student_id: str, task_name: str, test_case: str) -> Verdict:
        found = _single_or_conflict(self.contributions(student_id, task_name, test_case))
        if found is not None:
            return found
        # Task had a classified file but no per-test-case result (e.g. no test cases).
        found = _single_or_conflict(self.contributions(student_id, task_name, None))
        if found is not None:
            return found
        return Verdict.NF

    def accept_ratio(self, student_id: str, task_name: str, test_cases: Sequence[str]) -> int:
        """Integer percentage of test cases with exactly one contributing file that got AC."""

        if not test_cases:
            return 0
        accepted = 0
        for name in test_cases:
            contributed = self.contributions(student_id, task_name, name)
            if len(contributed) == 1 and next(iter(contributed.values())) is Verdict.AC:
                accepted += 1
        return (accepted * 100) // len(test_cases)


def _single_or_conflict(contributed: Mapping[Path, Verdict]) -> Verdict | None:
    if not contributed:
        return None
    if len(contributed) > 1:
        return Verdict.CF
    return next(iter(contributed.values()))


def aggregate(results: Iterable[TestResult]) -> ResultTable:
    entries: dict[ResultKey, dict[Path, Verdict]] = {}
    for result in results:
        key = ResultKey(
            student_id=result.unit.student_id,
            task_name=result.unit.task_name,
            test_case=result.test_case.name if result.test_case is not None else None,
        )
        entries.setdefault(key, {})[result.unit.source.path] = result.verdict
    return ResultTable(entries)
