from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor

from tagrade.services.program import CapturedStream, run_program


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_run_program_captures_output_and_exit_code() -> None:
    run = run_program(
        argv=_python("import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"),
        time_limit_ms=10_000,
        max_stream_bytes=1024,
    )
    assert run.exit_code == 3
    assert run.timeout is False
    assert run.stdout.strip() == b"out"
    assert run.stderr.strip() == b"err"
    assert run.elapsed_ms > 0


def test_run_program_feeds_stdin() -> None:
    run = run_program(
        argv=_python("import sys; data = sys.stdin.read(); print(data.upper(), end='')"),
        input_bytes=b"abc\ndef\n",
        time_limit_ms=10_000,
        max_stream_bytes=1024,
    )
    assert run.exit_code == 0
    assert run.stdout == b"ABC\nDEF\n"


def test_run_program_kills_on_deadline() -> None:
    run = run_program(argv=_python("while True: pass"), time_limit_ms=300, max_stream_bytes=1024)
    assert run.timeout is True
    assert run.exit_code != 0
    assert run.elapsed_ms < 10_000


def test_run_program_truncates_long_output() -> None:
    run = run_program(argv=_python("print('x' * 5000)"), time_limit_ms=10_000, max_stream_bytes=100)
    assert len(run.stdout) == 100
    assert run.stdout_truncated is True


def test_captured_stream_limit() -> None:
    stream = CapturedStream(limit=4, data=bytearray())
    stream.add(b"ab")
    stream.add(b"cdef")
    assert bytes(stream.data) == b"abcd"
    assert stream.truncated is True


def test_run_program_kills_on_deadline_when_stdin_is_never_read() -> None:
    # Far more input than a pipe buffer holds.
    payload = b"".join(b"x" * 1000 + b"\n" for _ in range(200))
    run = run_program(
        argv=_python("import time; time.sleep(20)"),
        input_bytes=payload,
        time_limit_ms=300,
        max_stream_bytes=1024,
    )
    assert run.timeout is True
    assert run.elapsed_ms < 5_000


def test_run_program_feeds_input_larger_than_the_pipe_buffer() -> None:
    payload = b"".join(b"y" * 1000 + b"\n" for _ in range(500))
    run = run_program(
        argv=_python("import sys; print(len(sys.stdin.buffer.read()))"),
        input_bytes=payload,
        time_limit_ms=10_000,
        max_stream_bytes=1024,
    )
    assert run.timeout is False
    assert run.stdout.strip() == str(len(payload)).encode()


def test_run_program_ignores_input_of_a_program_that_exits_early() -> None:
    run = run_program(
        argv=_python("print('done')"),
        input_bytes=b"z" * 500_000,
        time_limit_ms=10_000,
        max_stream_bytes=1024,
    )
    assert run.exit_code == 0
    assert run.timeout is False
    assert run.stdout.strip() == b"done"


BACKGROUND_CHILD = (
    "import subprocess, sys; "
    "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(15)']); "
    "print('x', flush=True)"
)


def test_background_process_sharing_the_pipes_does_not_hold_the_run() -> None:
    run = run_program(argv=_python(BACKGROUND_CHILD), time_limit_ms=5_000, max_stream_bytes=1024)
    assert run.stdout.strip() == b"x"
    assert run.exit_code == 0
    assert run.elapsed_ms < 10_000


def test_background_process_is_stopped_without_a_time_limit() -> None:
    run = run_program(argv=_python(BACKGROUND_CHILD), time_limit_ms=-1, max_stream_bytes=1024)
    assert run.stdout.strip() == b"x"
    assert run.timeout is False
    assert run.elapsed_ms < 10_000


def test_programs_started_from_worker_threads_lead_their_own_session() -> None:
    def one(_: int):
        return run_program(
            argv=_python("import os; print(os.getsid(0) == os.getpid())"),
            time_limit_ms=10_000,
            max_stream_bytes=1024,
        )

    with ThreadPoolExecutor(max_workers=4) as pool:
        runs = list(pool.map(one, range(8)))
    assert [r.stdout.strip() for r in runs] == [b"True"] * 8
