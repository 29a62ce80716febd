from __future__ import annotations

# Pure scans over a submitted source file: package declaration and task markers.
#
# Both read the file under a caller-chosen encoding with replacement characters;
# only javac treats unmappable bytes as a hard signal.

import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from ..config import TaskDefinition
from ..domain import Encoding


PACKAGE_RE = re.compile(r"^package\s+(.*)\s*;\s*$")


def read_lines(path: Path, encoding: Encoding) -> list[str]:
    text = path.read_bytes().decode(encoding.codec, errors="replace")
    return text.splitlines()


def resolve_namespace(path: Path, encoding: Encoding) -> str | None:
    """Return the first `package x.y;` declaration of the file, if any."""

    try:
        lines = read_lines(path, encoding)
    except OSError:
        return None
    for line in lines:
        m = PACKAGE_RE.match(line)
        if m:
            name = m.group(1).strip()
            if name:
                return name
    return None


def _contains_any(line: str, words: Iterable[str]) -> bool:
    return any(w in line for w in words)


def classify_lines(lines: Iterable[str], tasks: Mapping[str, TaskDefinition]) -> frozenset[str]:
    # Exclusion is sticky: an excluded task never comes back, wherever its
    # exclusion marker appears in the file.
    matched: set[str] = set()
    excluded: set[str] = set()
    for line in lines:
        for name, task in tasks.items():
            if task.exclude_word and _contains_any(line, task.exclude_word):
                excluded.add(name)
                matched.discard(name)
                continue
            if name not in excluded and _contains_any(line, task.word):
                matched.add(name)
    return frozenset(matched)


def classify_source(path: Path, encoding: Encoding, tasks: Mapping[str, TaskDefinition]) -> frozenset[str]:
    """Return the names of every task whose markers appear in the file (maybe none)."""

    return classify_lines(read_lines(path, encoding), tasks)


def ordered_task_names(matched: frozenset[str], tasks: Mapping[str, TaskDefinition]) -> list[str]:
    # Stable enumeration order for scheduling: configuration order.
    return [name for name in tasks if name in matched]
