import logging
import os
import uuid
from pathlib import Path

from zenorun.config import config
from zenorun.const import CONTAINER_NAME_PREFIX

logger = logging.getLogger(__name__)


class Sandbox:
    SECURITY_ARGS = [
        '--security-opt=no-new-privileges:true',
        '--cap-drop=ALL',
    ]

    name: str
    _image: str
    _rw_binds: list[tuple[str, str]]
    _env: dict[str, str]
    _forced_env: set[str]
    _ports: list[tuple[int, int]]
    _env_file: Path | None
    _uid: int
    _gid: int
    _cpus: str
    _memory: str
    _pids_limit: int

    def __init__(
        self,
        image: str,
        *,
        name: str | None = None,
        uid: int | None = None,
        gid: int | None = None,
    ):
        self.name = name or CONTAINER_NAME_PREFIX + uuid.uuid4().hex[:12]
        self._image = image
        self._rw_binds = []
        self._env = {}
        self._forced_env = set()
        self._ports = []
        self._env_file = None
        self._uid = os.getuid() if uid is None else uid
        self._gid = os.getgid() if gid is None else gid
        self._cpus = config.cpus
        self._memory = config.memory
        self._pids_limit = config.pids_limit

    @property
    def env(self) -> dict[str, str]:
        return self._env.copy()

    @property
    def ports(self) -> list[tuple[int, int]]:
        return self._ports.copy()

    def add_rw_bind(self, src: str | Path, dst: str):
        self._rw_binds.append((str(src), dst))

    def force_env(self, key: str, value: str | int):
        self._env[key] = str(value)
        self._forced_env.add(key)

    def add_envs(self, envs: dict[str, str]):
        for k, v in envs.items():
            if k not in self._forced_env:
                self._env[k] = v

    def set_env_file(self, path: Path):
        self._env_file = path

    def publish(self, host_port: int, container_port: int):
        self._ports.append((host_port, container_port))

    def build_args(self) -> list[str]:
        res = [
            'run',
            '--rm',
            '--name',
            self.name,
            f'--cpus={self._cpus}',
            f'--memory={self._memory}',
            f'--pids-limit={self._pids_limit}',
            *self.SECURITY_ARGS,
            '--user',
            f'{self._uid}:{self._gid}',
        ]
        for host_port, container_port in self._ports:
            res.extend(('-p', f'{host_port}:{container_port}'))
        for k, v in self._env.items():
            res.extend(('-e', f'{k}={v}'))
        if self._env_file is not None:
            res.extend(('--env-file', str(self._env_file)))
        for src, dst in self._rw_binds:
            res.extend(('-v', f'{src}:{dst}:rw'))
        res.append(self._image)
        logger.debug(f'Generated sandbox args for {self.name}, env keys {list(self._env)}')
        return res
