from __future__ import annotations

# Interactive judging (serial mode only): show expected/actual output and ask
# the operator for the verdict of each test case.

import logging
from collections.abc import Callable
from dataclasses import replace

from ..domain import TestResult, Verdict


logger = logging.getLogger(__name__)

InputFn = Callable[[str], str]
PrintFn = Callable[..., None]


def read_verdict(*, input_fn: InputFn = input, print_fn: PrintFn = print) -> Verdict | None:
    """Prompt until a recognised verdict is typed. Returns None on end of input."""

    while True:
        try:
            text = input_fn("judge?: ")
        except EOFError:
            print_fn("input error")
            return None
        verdict = Verdict.from_input(text)
        if verdict is Verdict.UNKNOWN:
            print_fn("invalid input")
            continue
        return verdict


def show_result(result: TestResult, *, print_fn: PrintFn = print) -> None:
    test_case = result.test_case
    expected = "\n".join(test_case.expect) if test_case is not None else ""
    if expected.strip():
        print_fn("expected:")
        print_fn(expected)
    if result.stderr.strip():
        print_fn("stderr:")
        print_fn(result.stderr)
    if result.stdout.strip():
        print_fn("stdout:")
        print_fn(result.stdout.rstrip("\n\t "))


def judge_manually(result: TestResult, *, input_fn: InputFn = input, print_fn: PrintFn = print) -> TestResult:
    print_fn()
    show_result(result, print_fn=print_fn)
    verdict = read_verdict(input_fn=input_fn, print_fn=print_fn)
    print_fn()
    if verdict is None:
        logger.warning("no manual verdict for %s; keeping %s", result.unit.source.path, result.verdict)
        return result
    return replace(result, verdict=verdict)
