import logging
from typing import Callable, Iterable

from zenorun.clients import DockerClient
from zenorun.process import LogStream, ProcessRunner
from zenorun.runner.images import ImageProvisioner
from zenorun.schemas import ProjectType

logger = logging.getLogger(__name__)

DEFAULT_TYPES = (ProjectType.python, ProjectType.node, ProjectType.polyglot)


async def setup_images(
    types: Iterable[ProjectType] = DEFAULT_TYPES,
    log: LogStream | None = None,
    *,
    runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
) -> list[str]:
    provisioner = ImageProvisioner(DockerClient(runner_factory(log=log)))
    res = []
    try:
        for project_type in types:
            logger.info(f'Ensuring image for {project_type.value}')
            image = await provisioner.ensure(project_type)
            if image not in res:
                res.append(image)
    finally:
        if log is not None:
            log.close()
    return res
