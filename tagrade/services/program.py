from __future__ import annotations

# Subprocess runner shared by the compiler invoker and the test executor.
#
# The child runs in its own session (and process group) so the whole group can
# be SIGKILLed when the wall-clock deadline passes. stdin is fed and
# stdout/stderr are drained through one selector, so neither a child that never
# reads its input nor a chatty child can hold the loop past the deadline.

import os
import selectors
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO

STDIN_CHUNK = 65536


@dataclass(frozen=True)
class ProgramRun:
    argv: list[str]
    exit_code: int
    timeout: bool
    elapsed_ms: float
    stdout: bytes
    stderr: bytes
    stdout_truncated: bool = False
    stderr_truncated: bool = False


@dataclass
class RunProgramState:
    # Mutable state used by run_program() and its helpers.
    reaped: bool = False
    exit_code: int | None = None
    signal_no: int | None = None
    timeout: bool = False
    group_killed: bool = False
    reap_error: str | None = None


@dataclass
class CapturedStream:
    limit: int
    data: bytearray
    truncated: bool = False

    def add(self, chunk: bytes) -> None:
        room = self.limit - len(self.data)
        if room <= 0:
            self.truncated = True
            return
        if len(chunk) > room:
            self.truncated = True
            chunk = chunk[:room]
        self.data.extend(chunk)


@dataclass
class StdinFeeder:
    pipe: IO[bytes]
    data: bytes
    offset: int = 0

    def start(self, sel: selectors.BaseSelector) -> None:
        if not self.data:
            self.close(sel)
            return
        os.set_blocking(self.pipe.fileno(), False)
        sel.register(self.pipe, selectors.EVENT_WRITE, data="stdin")

    def write_ready(self, sel: selectors.BaseSelector) -> None:
        try:
            self.offset += os.write(self.pipe.fileno(), self.data[self.offset:self.offset + STDIN_CHUNK])
        except BlockingIOError:
            return
        except BrokenPipeError:
            # The program exited (or closed stdin) without reading everything.
            self.offset = len(self.data)
        if self.offset >= len(self.data):
            self.close(sel)

    def close(self, sel: selectors.BaseSelector) -> None:
        if self.pipe.closed:
            return
        try:
            sel.unregister(self.pipe)
        except KeyError:
            pass
        try:
            self.pipe.close()
        except BrokenPipeError:
            pass


def kill_process_group(proc: subprocess.Popen[bytes]) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Process already exited.
        return
    except PermissionError:
        proc.kill()


def _record_status(state: RunProgramState, status: int) -> None:
    state.reaped = True
    if os.WIFEXITED(status):
        state.exit_code = os.WEXITSTATUS(status)
    elif os.WIFSIGNALED(status):
        state.signal_no = os.WTERMSIG(status)
        state.exit_code = -int(state.signal_no)
    else:
        state.exit_code = 0


def try_reap_nohang(proc: subprocess.Popen[bytes], state: RunProgramState) -> None:
    if state.reaped:
        return
    try:
        pid, status = os.waitpid(proc.pid, os.WNOHANG)
    except ChildProcessError:
        state.reaped = True
        if state.exit_code is None:
            state.exit_code = int(proc.returncode) if proc.returncode is not None else 0
        return
    except OSError as e:
        state.reap_error = str(e)
        return
    if pid == 0:
        return
    _record_status(state, status)
    # Keep Popen consistent so it does not try to reap again.
    proc.returncode = state.exit_code


def reap_blocking(proc: subprocess.Popen[bytes], state: RunProgramState) -> None:
    if state.reaped:
        return
    try:
        _pid, status = os.waitpid(proc.pid, 0)
        _record_status(state, status)
        proc.returncode = state.exit_code
    except (ChildProcessError, OSError) as e:
        state.reap_error = str(e)
        try:
            state.exit_code = int(proc.wait(timeout=1))
        except (subprocess.TimeoutExpired, OSError):
            state.exit_code = int(proc.returncode) if proc.returncode is not None else 0
        state.reaped = True


def spawn_program(argv: list[str], *, cwd: Path | None = None) -> subprocess.Popen[bytes]:
    proc = subprocess.Popen(
        argv,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        # setsid() in the child; safe to call from worker threads.
        start_new_session=True,
    )
    assert proc.stdin and proc.stdout and proc.stderr
    return proc


def init_selector(proc: subprocess.Popen[bytes]) -> selectors.BaseSelector:
    assert proc.stdout and proc.stderr
    sel = selectors.DefaultSelector()
    sel.register(proc.stdout, selectors.EVENT_READ, data="stdout")
    sel.register(proc.stderr, selectors.EVENT_READ, data="stderr")
    return sel


def outputs_open(sel: selectors.BaseSelector) -> bool:
    return any(key.data != "stdin" for key in sel.get_map().values())


def reap_group(proc: subprocess.Popen[bytes], state: RunProgramState, sel: selectors.BaseSelector, feeder: StdinFeeder) -> None:
    # Nothing the program started may outlive it while holding our pipes.
    if not state.reaped or state.group_killed:
        return
    state.group_killed = True
    feeder.close(sel)
    kill_process_group(proc)


def enforce_deadline(
    proc: subprocess.Popen[bytes],
    state: RunProgramState,
    sel: selectors.BaseSelector,
    *,
    now: float,
    deadline: float | None,
) -> None:
    if deadline is None or now < deadline or state.timeout:
        return
    if state.reaped and not outputs_open(sel):
        return
    state.timeout = True
    kill_process_group(proc)
    try_reap_nohang(proc, state)


def pump_streams(sel: selectors.BaseSelector, streams: dict[str, CapturedStream], feeder: StdinFeeder) -> None:
    if not sel.get_map():
        return
    for key, _mask in sel.select(timeout=0.05):
        if key.data == "stdin":
            feeder.write_ready(sel)
            continue
        data = key.fileobj.read1(65536)  # type: ignore[union-attr]
        if not data:
            sel.unregister(key.fileobj)
            continue
        streams[key.data].add(data)


def run_program(
    *,
    argv: list[str],
    input_bytes: bytes = b"",
    time_limit_ms: int,
    max_stream_bytes: int,
    cwd: Path | None = None,
) -> ProgramRun:
    """Run one external process to completion or until the deadline.

    A negative `time_limit_ms` waits indefinitely. On deadline the whole
    process group is killed and `timeout` is set; neither the process nor
    anything it started is left running after this returns. Spawn failures
    (`OSError`) propagate to the caller, which turns them into a typed result.
    """

    start = time.monotonic()
    proc = spawn_program(argv, cwd=cwd)
    assert proc.stdin
    state = RunProgramState()
    sel = init_selector(proc)
    feeder = StdinFeeder(pipe=proc.stdin, data=input_bytes)
    streams = {
        "stdout": CapturedStream(limit=max_stream_bytes, data=bytearray()),
        "stderr": CapturedStream(limit=max_stream_bytes, data=bytearray()),
    }
    deadline = start + (time_limit_ms / 1000.0) if time_limit_ms >= 0 else None

    try:
        feeder.start(sel)
        while True:
            now = time.monotonic()
            try_reap_nohang(proc, state)
            reap_group(proc, state, sel, feeder)
            enforce_deadline(proc, state, sel, now=now, deadline=deadline)

            if state.reaped and (not outputs_open(sel) or state.timeout):
                break
            if sel.get_map():
                pump_streams(sel, streams, feeder)
            else:
                time.sleep(0.02)
    finally:
        feeder.close(sel)
        if not state.reaped or outputs_open(sel):
            kill_process_group(proc)
        sel.close()
        reap_blocking(proc, state)
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()

    end = time.monotonic()
    return ProgramRun(
        argv=list(argv),
        exit_code=int(state.exit_code if state.exit_code is not None else 0),
        timeout=state.timeout,
        elapsed_ms=(end - start) * 1000.0,
        stdout=bytes(streams["stdout"].data),
        stderr=bytes(streams["stderr"].data),
        stdout_truncated=streams["stdout"].truncated,
        stderr_truncated=streams["stderr"].truncated,
    )
