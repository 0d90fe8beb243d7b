import os
import yaml
from pathlib import Path
from pydantic import AfterValidator, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings
from typing import Annotated

IMAGES_DIR = Path(__file__).absolute().parent.parent / 'images'


class Config(BaseSettings):
    host: str = '127.0.0.1'
    port: int = 4174
    debug: bool = False

    data_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = Path(
        '.'
    )
    repos_dir: Path = None
    runs_dir: Path = None
    images_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = (
        IMAGES_DIR
    )

    git: str = 'git'
    docker: str = 'docker'
    image_prefix: str = 'zenorun/'

    cpus: str = '2'
    memory: str = '4g'
    pids_limit: int = 256

    clone_depth: int = 1
    default_timeout: float = 600
    stop_timeout: float = 30

    passthrough_env: list[str] = ['TEST_OPENAI_API_KEY']

    # noinspection PyNestedDecorators
    @field_validator('repos_dir', 'runs_dir', mode='before')
    @classmethod
    def default_dirs(cls, v: Path | str | None, info: ValidationInfo):
        if 'data_dir' not in info.data:
            # pydantic won't show errors until everything is validated
            # we don't want to show all _dir fields as errored if data_dir is not set
            return ''
        if v is None:
            dirname = info.field_name.removesuffix('_dir').replace('_', '-')
            res = info.data['data_dir'] / dirname
        else:
            res = Path(v).absolute()
        res.mkdir(parents=True, exist_ok=True)
        return res


config_home = Path(os.getenv('XDG_CONFIG_HOME') or os.path.expanduser('~/.config'))
config_file = config_home / 'zenorun' / 'config.yml'
if config_file.is_file():
    config_values = yaml.safe_load(config_file.read_text()) or {}
else:
    config_values = {}
config = Config(**config_values, _env_file='.env', _env_prefix='ZENORUN_')

__all__ = ['Config', 'config']
