import asyncio
import os
import sys
import time

import pytest

from zenorun import process
from zenorun.const import UNKNOWN_EXIT_CODE
from zenorun.exceptions import ProcessFailedError, ProcessStartError, RunTimeoutError
from zenorun.process import LogLine, LogStream, ProcessRunner, normalize_exit_code

PY = sys.executable


def deadline_in(seconds: float) -> float:
    return asyncio.get_running_loop().time() + seconds


@pytest.mark.asyncio
async def test_streams_and_captures_both_streams(collect_log):
    log = LogStream()
    runner = ProcessRunner(log)
    res = await runner.run(
        PY,
        '-c',
        'import sys\n'
        'print("one"); print("two")\n'
        'print("oops", file=sys.stderr)',
    )
    log.close()
    lines = await collect_log(log)

    assert res.exit_code == 0
    assert res.stdout == '[stdout] one\n[stdout] two\n'
    assert res.stderr == '[stderr] oops\n'
    assert [x for x in lines if x.stream == 'stdout'] == [
        LogLine('stdout', 'one'),
        LogLine('stdout', 'two'),
    ]
    assert LogLine('stderr', 'oops') in lines


@pytest.mark.asyncio
async def test_nonzero_exit_code_is_data():
    res = await ProcessRunner().run(PY, '-c', 'raise SystemExit(3)')
    assert res.exit_code == 3


@pytest.mark.asyncio
async def test_check_raises_with_output():
    with pytest.raises(ProcessFailedError) as exc_info:
        await ProcessRunner().check(PY, '-c', 'print("bad things"); raise SystemExit(4)')
    assert exc_info.value.result.exit_code == 4
    assert 'bad things' in exc_info.value.output


@pytest.mark.asyncio
async def test_quiet_does_not_forward(collect_log):
    log = LogStream()
    res = await ProcessRunner(log).run(PY, '-c', 'print("hidden")', quiet=True)
    log.close()
    assert await collect_log(log) == []
    assert res.stdout == '[stdout] hidden\n'


@pytest.mark.asyncio
async def test_very_long_line_is_not_truncated():
    res = await ProcessRunner().run(PY, '-c', 'print("x" * 300000)')
    assert res.stdout == '[stdout] ' + 'x' * 300000 + '\n'


@pytest.mark.asyncio
async def test_deadline_kills_process():
    runner = ProcessRunner(deadline=deadline_in(0.5))
    started = time.monotonic()
    with pytest.raises(RunTimeoutError) as exc_info:
        await runner.run(
            PY, '-c', 'import time; print("started", flush=True); time.sleep(60)'
        )
    assert time.monotonic() - started < 10
    assert exc_info.value.result.exit_code == UNKNOWN_EXIT_CODE
    assert '[stdout] started' in exc_info.value.result.stdout


@pytest.mark.asyncio
async def test_outer_cancellation_kills_process(tmp_path):
    marker = tmp_path / 'pid'
    task = asyncio.create_task(
        ProcessRunner().run(
            PY,
            '-c',
            f'import os, time; open({str(marker)!r}, "w").write(str(os.getpid())); '
            'time.sleep(60)',
        )
    )
    for _ in range(100):
        if marker.exists() and marker.read_text():
            break
        await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    pid = int(marker.read_text())
    with pytest.raises(ProcessLookupError):
        # reaped before cancellation propagated
        os.kill(pid, 0)


@pytest.mark.asyncio
async def test_killed_by_signal_is_unknown():
    res = await ProcessRunner().run(
        PY, '-c', 'import os, signal; os.kill(os.getpid(), signal.SIGKILL)'
    )
    assert res.exit_code == UNKNOWN_EXIT_CODE


@pytest.mark.asyncio
async def test_missing_binary():
    with pytest.raises(ProcessStartError):
        await ProcessRunner().run('zenorun-no-such-binary')


@pytest.mark.parametrize(
    'output, expected',
    [
        ('before\n' + 'x' * 5000 + '\nafter\n', '[stdout] before\n[stdout] after\n'),
        ('x' * 5000 + '\n' + 'y' * 3000 + '\nlast', '[stdout] last\n'),
        ('before\n' + 'x' * 5000, '[stdout] before\n'),
    ],
)
@pytest.mark.asyncio
async def test_overlong_line_is_dropped_whole(monkeypatch, output, expected):
    monkeypatch.setattr(process, 'LINE_LIMIT', 1024)
    res = await ProcessRunner().run(
        PY, '-c', f'import sys; sys.stdout.write({output!r})'
    )
    assert res.exit_code == 0
    assert res.stdout == expected


def test_normalize_exit_code():
    assert normalize_exit_code(0) == 0
    assert normalize_exit_code(125) == 125
    assert normalize_exit_code(-9) == UNKNOWN_EXIT_CODE
    assert normalize_exit_code(None) == UNKNOWN_EXIT_CODE


@pytest.mark.asyncio
async def test_log_stream_is_single_pass(collect_log):
    log = LogStream()
    log.put(LogLine('info', 'hello'))
    log.close()
    assert await collect_log(log) == [LogLine('info', 'hello')]
    assert await collect_log(log) == []
    with pytest.raises(RuntimeError):
        log.put(LogLine('info', 'late'))


def test_log_line_format():
    assert str(LogLine('stderr', 'boom')) == '[stderr] boom'


@pytest.mark.asyncio
async def test_with_deadline_drops_log():
    log = LogStream()
    runner = ProcessRunner(log, deadline=1.0)
    other = runner.with_deadline(None)
    assert other.log is None
    assert other.deadline is None
    assert runner.log is log
