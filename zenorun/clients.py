import logging
from pathlib import Path

from zenorun.config import config
from zenorun.process import ProcessRunner
from zenorun.sandbox import Sandbox
from zenorun.schemas import RunResult

logger = logging.getLogger(__name__)


class GitClient:
    runner: ProcessRunner
    binary: str

    def __init__(self, runner: ProcessRunner, binary: str | None = None):
        self.runner = runner
        self.binary = binary or config.git

    async def clone(self, url: str, ref: str, dest: Path, depth: int) -> RunResult:
        return await self.runner.check(
            self.binary,
            'clone',
            '--depth',
            str(depth),
            '--branch',
            ref,
            '--',
            url,
            dest,
        )

    async def status(self, repo: Path) -> str:
        res = await self.runner.check(
            self.binary, 'status', '--porcelain', cwd=repo, quiet=True
        )
        return res.stdout

    async def set_remote_url(self, repo: Path, url: str) -> RunResult:
        return await self.runner.check(
            self.binary, 'remote', 'set-url', 'origin', url, cwd=repo
        )

    async def fetch(self, repo: Path, ref: str, depth: int) -> RunResult:
        return await self.runner.check(
            self.binary, 'fetch', '--depth', str(depth), 'origin', ref, cwd=repo
        )

    async def checkout(self, repo: Path, ref: str) -> RunResult:
        return await self.runner.check(self.binary, 'checkout', ref, cwd=repo)

    async def has_unpushed_commits(self, repo: Path, branch: str) -> bool:
        res = await self.runner.run(
            self.binary,
            'rev-list',
            f'refs/heads/{branch}',
            '--not',
            '--remotes',
            cwd=repo,
            quiet=True,
        )
        # nonzero when the local branch does not exist
        return res.exit_code == 0 and bool(res.stdout.strip())

    async def reset_to_fetch_head(self, repo: Path) -> RunResult:
        return await self.runner.check(
            self.binary, 'reset', '--hard', 'FETCH_HEAD', cwd=repo
        )

    async def checkout_fetch_head(self, repo: Path) -> RunResult:
        return await self.runner.check(
            self.binary, 'checkout', '--detach', 'FETCH_HEAD', cwd=repo
        )


class DockerClient:
    runner: ProcessRunner
    binary: str

    def __init__(self, runner: ProcessRunner, binary: str | None = None):
        self.runner = runner
        self.binary = binary or config.docker

    async def image_exists(self, image: str) -> bool:
        res = await self.runner.run(self.binary, 'image', 'inspect', image, quiet=True)
        return res.exit_code == 0

    async def build(self, image: str, dockerfile: Path, context: Path) -> RunResult:
        return await self.runner.check(
            self.binary, 'build', '-t', image, '-f', dockerfile, context
        )

    async def run(self, sandbox: Sandbox) -> RunResult:
        return await self.runner.run(self.binary, *sandbox.build_args())

    async def remove_container(self, name: str, deadline: float | None) -> RunResult:
        logger.info(f'Removing container {name}')
        return await self.runner.with_deadline(deadline).run(
            self.binary, 'rm', '-f', name, quiet=True
        )
