import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable

from zenorun.clients import DockerClient, GitClient
from zenorun.config import config
from zenorun.const import (
    API_CONTAINER_PORT,
    EXPOSE_PORT,
    REPO_MOUNT,
    TARGET_PORT,
    UI_CONTAINER_PORT,
    WORK_MOUNT,
)
from zenorun.exceptions import InvalidRequestError, ProcessError, RunTimeoutError
from zenorun.process import LogStream, ProcessRunner
from zenorun.runner.checkout import RepoSynchronizer
from zenorun.runner.classify import classify_project
from zenorun.runner.images import ImageProvisioner
from zenorun.sandbox import Sandbox
from zenorun.schemas import ProjectType, RunResult, Service, Workflow, WorkflowRequest
from zenorun.utils import allocate_free_port, repo_dir_name

logger = logging.getLogger(__name__)


def checkout_dir(request: WorkflowRequest) -> Path:
    if request.checkout_dir is not None:
        return request.checkout_dir.absolute()
    try:
        return config.repos_dir / repo_dir_name(request.repo_url)
    except ValueError as e:
        raise InvalidRequestError(str(e))


def validate_entry(request: WorkflowRequest, project_type: ProjectType):
    if (
        request.workflow == Workflow.run
        and project_type != ProjectType.polyglot
        and request.service != Service.ui
        and not request.entry
    ):
        raise InvalidRequestError(
            f'An entry file is required to run a {project_type.value} project '
            '(e.g. --entry server.py)'
        )


def resolve_ports(
    request: WorkflowRequest, project_type: ProjectType
) -> tuple[int, int]:
    ui_port, api_port = request.ui_port, request.api_port
    if request.workflow != Workflow.run:
        return ui_port, api_port
    if project_type == ProjectType.polyglot:
        if request.service.includes(Service.ui) and not ui_port:
            ui_port = allocate_free_port()
        if request.service.includes(Service.api) and not api_port:
            api_port = allocate_free_port()
    elif request.service == Service.ui:
        ui_port = ui_port or allocate_free_port()
    else:
        api_port = api_port or allocate_free_port()
    return ui_port, api_port


def passthrough_env() -> dict[str, str]:
    return {
        name: os.environ[name] for name in config.passthrough_env if name in os.environ
    }


def build_sandbox(
    request: WorkflowRequest,
    project_type: ProjectType,
    image: str,
    repo_path: Path,
    work_dir: Path,
    ui_port: int = 0,
    api_port: int = 0,
) -> Sandbox:
    sandbox = Sandbox(image)
    sandbox.force_env('WORKFLOW', request.workflow.value)
    sandbox.force_env('SERVICE', request.service.value)

    if project_type == ProjectType.polyglot and request.workflow == Workflow.run:
        if request.service.includes(Service.ui) and ui_port:
            sandbox.publish(ui_port, UI_CONTAINER_PORT)
            sandbox.force_env('UI_PORT', UI_CONTAINER_PORT)
        if request.service.includes(Service.api) and api_port:
            sandbox.publish(api_port, API_CONTAINER_PORT)
            sandbox.force_env('API_PORT', API_CONTAINER_PORT)
    else:
        sandbox.force_env('EXPOSE_PORT', EXPOSE_PORT)
        sandbox.force_env('TARGET_PORT', TARGET_PORT)
        host_port = ui_port if request.service == Service.ui else api_port
        if host_port:
            sandbox.publish(host_port, EXPOSE_PORT)

    if request.entry:
        sandbox.force_env('ENTRY', request.entry)

    sandbox.add_envs(passthrough_env())
    sandbox.add_envs(request.env)
    if request.env_file is not None:
        sandbox.set_env_file(request.env_file.absolute())

    sandbox.add_rw_bind(repo_path, REPO_MOUNT)
    sandbox.add_rw_bind(work_dir, WORK_MOUNT)
    return sandbox


class Orchestrator:
    runner_factory: Callable[..., ProcessRunner]
    git_client: Callable[[ProcessRunner], GitClient]
    docker_client: Callable[[ProcessRunner], DockerClient]

    def __init__(
        self,
        *,
        runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
        git_client: Callable[[ProcessRunner], GitClient] = GitClient,
        docker_client: Callable[[ProcessRunner], DockerClient] = DockerClient,
    ):
        self.runner_factory = runner_factory
        self.git_client = git_client
        self.docker_client = docker_client

    async def execute(
        self, request: WorkflowRequest, log: LogStream | None = None
    ) -> RunResult:
        try:
            return await self._execute(request, log)
        finally:
            if log is not None:
                log.close()

    async def _execute(
        self, request: WorkflowRequest, log: LogStream | None
    ) -> RunResult:
        loop = asyncio.get_running_loop()
        runner = self.runner_factory(log=log, deadline=loop.time() + request.timeout)
        git = self.git_client(runner)
        docker = self.docker_client(runner)

        repo_path = checkout_dir(request)
        await RepoSynchronizer(git).sync(repo_path, request.repo_url, request.ref)

        project_type = classify_project(repo_path)
        logger.info(f'Detected project type {project_type.value} in {repo_path}')
        runner.info(f'detected project type: {project_type.value}')
        if project_type == ProjectType.unknown:
            runner.warn('no python or node manifest found, using the polyglot image')

        validate_entry(request, project_type)
        image = await ImageProvisioner(docker).ensure(project_type)
        ui_port, api_port = resolve_ports(request, project_type)

        work_dir = Path(tempfile.mkdtemp(prefix='run-', dir=config.runs_dir))
        try:
            sandbox = build_sandbox(
                request, project_type, image, repo_path, work_dir, ui_port, api_port
            )
            for host_port, container_port in sandbox.ports:
                runner.info(
                    f'will publish port {container_port} on http://localhost:{host_port}'
                )
            logger.info(f'Starting {request.workflow.value} in {sandbox.name} ({image})')
            try:
                res = await docker.run(sandbox)
            except (RunTimeoutError, asyncio.CancelledError):
                await self._remove_container(docker, sandbox.name)
                raise
            logger.info(f'{sandbox.name} exited with code {res.exit_code}')
            return res
        finally:
            shutil.rmtree(work_dir)

    @staticmethod
    async def _remove_container(docker: DockerClient, name: str):
        deadline = asyncio.get_running_loop().time() + config.stop_timeout
        try:
            await docker.remove_container(name, deadline)
        except ProcessError as e:
            logger.error(f'Failed to remove container {name}: {e}')
