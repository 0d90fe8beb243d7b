import asyncio
import copy
import logging
from asyncio import StreamReader, create_subprocess_exec
from pathlib import Path
from subprocess import DEVNULL, PIPE
from typing import NamedTuple

from zenorun.const import UNKNOWN_EXIT_CODE
from zenorun.exceptions import ProcessFailedError, ProcessStartError, RunTimeoutError
from zenorun.schemas import RunResult

logger = logging.getLogger(__name__)

LINE_LIMIT = 16 * 1024 * 1024

_EOF = object()


class LogLine(NamedTuple):
    stream: str
    text: str

    def __str__(self):
        return f'[{self.stream}] {self.text}'


class LogStream:
    """Log lines of a single invocation, in arrival order.

    Consumed with ``async for``. The stream is finite: iteration ends once the
    producer closes it, and a finished stream cannot be iterated again.
    """

    _queue: asyncio.Queue
    _closed: bool
    _exhausted: bool

    def __init__(self):
        self._queue = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, line: LogLine):
        if self._closed:
            raise RuntimeError('Log stream is closed')
        self._queue.put_nowait(line)

    def close(self):
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_EOF)

    def __aiter__(self):
        return self

    async def __anext__(self) -> LogLine:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _EOF:
            self._exhausted = True
            raise StopAsyncIteration
        return item


def normalize_exit_code(returncode: int | None) -> int:
    # negative return codes mean the process was killed by a signal
    if returncode is None or returncode < 0:
        return UNKNOWN_EXIT_CODE
    return returncode


class ProcessRunner:
    log: LogStream | None
    deadline: float | None

    def __init__(self, log: LogStream | None = None, deadline: float | None = None):
        self.log = log
        self.deadline = deadline

    def with_deadline(self, deadline: float | None) -> 'ProcessRunner':
        res = copy.copy(self)
        res.log = None
        res.deadline = deadline
        return res

    def info(self, text: str):
        if self.log is not None:
            self.log.put(LogLine('info', text))

    def warn(self, text: str):
        if self.log is not None:
            self.log.put(LogLine('warn', text))

    async def _drain(
        self, reader: StreamReader, stream: str, capture: list[str], quiet: bool
    ):
        eof = False
        while not eof:
            try:
                raw = await reader.readuntil(b'\n')
            except asyncio.IncompleteReadError as e:
                raw = e.partial
                eof = True
            except asyncio.LimitOverrunError as e:
                logger.warning(f'Dropped {stream} line longer than {LINE_LIMIT} bytes')
                await self._discard_line(reader, e.consumed)
                continue
            if not raw:
                break
            line = LogLine(stream, raw.decode(errors='replace').rstrip('\r\n'))
            capture.append(f'{line}\n')
            if not quiet and self.log is not None:
                self.log.put(line)

    @staticmethod
    async def _discard_line(reader: StreamReader, consumed: int):
        # the overrun chunk is still buffered, skip it and the rest of its line
        while True:
            await reader.readexactly(consumed)
            try:
                await reader.readuntil(b'\n')
                return
            except asyncio.IncompleteReadError:
                return
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed

    @staticmethod
    async def _kill(p: asyncio.subprocess.Process):
        try:
            p.kill()
        except ProcessLookupError:
            pass
        await p.wait()

    async def run(
        self, *args: str | Path, cwd: Path | str | None = None, quiet: bool = False
    ) -> RunResult:
        args = tuple(str(x) for x in args)
        logger.debug(f'Running {args}')
        try:
            p = await create_subprocess_exec(
                *args,
                cwd=cwd,
                stdin=DEVNULL,
                stdout=PIPE,
                stderr=PIPE,
                limit=LINE_LIMIT,
            )
        except OSError as e:
            raise ProcessStartError(f'Failed to start {args[0]}: {e}', args, None)

        stdout: list[str] = []
        stderr: list[str] = []
        try:
            async with asyncio.timeout_at(self.deadline):
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(self._drain(p.stdout, 'stdout', stdout, quiet))
                    tg.create_task(self._drain(p.stderr, 'stderr', stderr, quiet))
                    tg.create_task(p.wait())
        except TimeoutError:
            logger.warning(f'Deadline exceeded, killing {args[0]} (pid {p.pid})')
            raise RunTimeoutError(
                f'{args[0]} timed out',
                args,
                RunResult(
                    exit_code=UNKNOWN_EXIT_CODE,
                    stdout=''.join(stdout),
                    stderr=''.join(stderr),
                ),
            ) from None
        finally:
            if p.returncode is None:
                await self._kill(p)

        exit_code = normalize_exit_code(p.returncode)
        logger.debug(f'{args[0]} exited with code {exit_code}')
        return RunResult(
            exit_code=exit_code, stdout=''.join(stdout), stderr=''.join(stderr)
        )

    async def check(
        self, *args: str | Path, cwd: Path | str | None = None, quiet: bool = False
    ) -> RunResult:
        res = await self.run(*args, cwd=cwd, quiet=quiet)
        if res.exit_code:
            logger.error(f'Process exited with code {res.exit_code}')
            raise ProcessFailedError(
                f'{" ".join(str(x) for x in args[:2])} exited with code {res.exit_code}',
                tuple(str(x) for x in args),
                res,
            )
        return res
