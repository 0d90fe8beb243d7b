"""
Pytest fixtures for zenorun tests.

Configuration is loaded when ``zenorun`` is imported, so the data directory
is redirected before any test module imports it.
"""
import os
import tempfile

os.environ['ZENORUN_DATA_DIR'] = tempfile.mkdtemp(prefix='zenorun-test-')
os.environ['XDG_CONFIG_HOME'] = tempfile.mkdtemp(prefix='zenorun-test-config-')

import functools
from pathlib import Path
from typing import Callable

import pytest

from zenorun.process import LogLine, LogStream, ProcessRunner
from zenorun.schemas import RunResult


class ProcessScript:
    """Records commands issued through a fake runner and scripts their results.

    A rule matches a command when every one of its words appears among the
    command's arguments. Rules added later take priority. Unmatched commands
    succeed with no output.
    """

    def __init__(self):
        self.calls: list[tuple[str, ...]] = []
        self._rules: list[tuple[tuple[str, ...], dict]] = []

    def on(
        self,
        *words: str,
        exit_code: int = 0,
        stdout: str = '',
        stderr: str = '',
        raises: Exception | None = None,
        hook: Callable[[tuple[str, ...]], None] | None = None,
    ):
        self._rules.insert(
            0,
            (
                words,
                dict(
                    exit_code=exit_code,
                    stdout=stdout,
                    stderr=stderr,
                    raises=raises,
                    hook=hook,
                ),
            ),
        )

    def respond(self, args: tuple[str, ...]) -> dict:
        for words, rule in self._rules:
            if all(w in args for w in words):
                return rule
        return dict(exit_code=0, stdout='', stderr='', raises=None, hook=None)

    def commands(self, *words: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if all(w in c for w in words)]


class FakeProcessRunner(ProcessRunner):
    script: ProcessScript

    def __init__(self, log=None, deadline=None, *, script: ProcessScript):
        super().__init__(log, deadline)
        self.script = script

    async def run(self, *args, cwd=None, quiet=False) -> RunResult:
        args = tuple(str(x) for x in args)
        self.script.calls.append(args)
        rule = self.script.respond(args)
        if rule['hook'] is not None:
            rule['hook'](args)
        if rule['raises'] is not None:
            raise rule['raises']
        captured = {}
        for stream in ('stdout', 'stderr'):
            lines = [LogLine(stream, x) for x in rule[stream].splitlines()]
            captured[stream] = ''.join(f'{x}\n' for x in lines)
            if not quiet and self.log is not None:
                for line in lines:
                    self.log.put(line)
        return RunResult(exit_code=rule['exit_code'], **captured)


@pytest.fixture
def script() -> ProcessScript:
    return ProcessScript()


@pytest.fixture
def runner_factory(script):
    return functools.partial(FakeProcessRunner, script=script)


@pytest.fixture
def fake_runner(runner_factory) -> FakeProcessRunner:
    return runner_factory()


@pytest.fixture
def images_dir(tmp_path) -> Path:
    res = tmp_path / 'images'
    res.mkdir()
    for name in (
        'runner.sh',
        'runner-python.Dockerfile',
        'runner-node.Dockerfile',
        'runner-polyglot.Dockerfile',
    ):
        (res / name).write_text('# test\n')
    return res


@pytest.fixture
def make_project(tmp_path) -> Callable[..., Path]:
    def make(*files: str, name: str = 'project') -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for file in files:
            path = root / file
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text('')
        return root

    return make


async def collect(log: LogStream) -> list[LogLine]:
    return [line async for line in log]


@pytest.fixture
def collect_log():
    return collect
