import enum
import re
from enum import Enum
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated

from zenorun.config import config
from zenorun.const import REPO_MOUNT

ENV_NAME_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
# scheme://host/path or scp-like user@host:path
REMOTE_URL_RE = re.compile(
    r'(?:(?:https?|ssh|git)://[^/\s]+/|\w[\w.-]*@\w[\w.-]*:)\S+'
)

Port = Annotated[int, Field(ge=0, le=65535)]


class Workflow(str, Enum):
    run = 'run'
    test = 'test'
    build = 'build'
    lint = 'lint'


class Service(str, Enum):
    all = 'all'
    ui = 'ui'
    api = 'api'

    def includes(self, other: 'Service') -> bool:
        return self == Service.all or self == other


class ProjectType(str, Enum):
    python = 'python'
    node = 'node'
    polyglot = 'polyglot'
    unknown = 'unknown'


class CheckoutState(Enum):
    absent = enum.auto()
    clean = enum.auto()
    dirty = enum.auto()


class ApiWorkflowRequest(BaseModel):
    """Workflow request as accepted from remote callers.

    Host paths (checkout directory, env file) can only be given locally, see
    ``WorkflowRequest``.
    """

    model_config = ConfigDict(extra='forbid')

    repo_url: str
    ref: str = 'main'
    workflow: Workflow
    service: Service = Service.all
    entry: str | None = None
    ui_port: Port = 0
    api_port: Port = 0
    timeout: Annotated[float, Field(gt=0)] = Field(
        default_factory=lambda: config.default_timeout
    )
    env: dict[str, str] = {}

    @field_validator('repo_url')
    @classmethod
    def v_repo_url(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError('repository url is required')
        if not REMOTE_URL_RE.fullmatch(v):
            raise ValueError(
                'repository url must be a remote https, http, ssh, git '
                'or user@host:path url'
            )
        return v

    @field_validator('ref')
    @classmethod
    def v_ref(cls, v: str):
        v = v.strip()
        if not v:
            return 'main'
        if v.startswith('-'):
            raise ValueError('invalid ref')
        return v

    @field_validator('entry')
    @classmethod
    def v_entry(cls, v: str | None):
        if not v:
            return None
        basedir = Path(REPO_MOUNT)
        resolved = (basedir / v).resolve()
        if not resolved.is_relative_to(basedir) or resolved == basedir:
            raise ValueError('entry must be a relative path inside the repository')
        return v

    @field_validator('env')
    @classmethod
    def v_env(cls, v: dict[str, str]):
        for key in v:
            if not ENV_NAME_RE.fullmatch(key):
                raise ValueError(f'invalid environment variable name: {key!r}')
        return v


class WorkflowRequest(ApiWorkflowRequest):
    checkout_dir: Path | None = None
    env_file: Path | None = None

    @field_validator('env_file')
    @classmethod
    def v_env_file(cls, v: Path | None):
        if v is not None and not v.is_file():
            raise ValueError(f'env file {v} does not exist')
        return v


class RunResult(BaseModel):
    exit_code: int
    stdout: str
    stderr: str
