import logging
from pathlib import Path

from zenorun.clients import DockerClient
from zenorun.config import config
from zenorun.const import ENTRYPOINT_SCRIPT
from zenorun.exceptions import (
    ConfigurationError,
    ImageBuildError,
    ProcessFailedError,
    ProcessStartError,
)
from zenorun.schemas import ProjectType

logger = logging.getLogger(__name__)


def _image_type(project_type: ProjectType) -> ProjectType:
    if project_type == ProjectType.unknown:
        return ProjectType.polyglot
    return project_type


def image_name(project_type: ProjectType) -> str:
    return f'{config.image_prefix}runner-{_image_type(project_type).value}:latest'


def build_file_name(project_type: ProjectType) -> str:
    return f'runner-{_image_type(project_type).value}.Dockerfile'


class ImageProvisioner:
    docker: DockerClient
    images_dir: Path

    def __init__(self, docker: DockerClient, images_dir: Path | None = None):
        self.docker = docker
        self.images_dir = images_dir or config.images_dir

    async def ensure(self, project_type: ProjectType) -> str:
        image = image_name(project_type)
        if await self.docker.image_exists(image):
            logger.debug(f'Image {image} already exists')
            return image

        dockerfile = self.images_dir / build_file_name(project_type)
        for file in (dockerfile, self.images_dir / ENTRYPOINT_SCRIPT):
            if not file.is_file():
                raise ConfigurationError(
                    f'Missing {file.name} in {self.images_dir}, cannot build {image}'
                )

        logger.info(f'Building {image} from {dockerfile}')
        self.docker.runner.info(f'building runner image {image} using {dockerfile.name}')
        try:
            await self.docker.build(image, dockerfile, self.images_dir)
        except (ProcessFailedError, ProcessStartError) as e:
            raise ImageBuildError(f'Failed to build image {image}:\n{e.output}') from e
        return image
