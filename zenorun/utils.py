import re
import socket
from pathlib import PurePosixPath

_DURATION_RE = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600}


def allocate_free_port() -> int:
    # Only guaranteed free at the time of the call
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        s.listen()
        return s.getsockname()[1]


def repo_dir_name(url: str) -> str:
    """Basename of a repository url without the ``.git`` suffix.

    Works for ``https://host/org/name.git`` as well as scp-like
    ``git@host:org/name.git`` urls.
    """
    path = url.rstrip('/').rsplit(':', 1)[-1]
    name = PurePosixPath(path).name.removesuffix('.git')
    if not name or name in ('.', '..'):
        raise ValueError(f'Cannot derive a directory name from {url!r}')
    return name


def parse_duration(value: str) -> float:
    """Parse ``90``, ``90s``, ``10m`` or ``1h30m`` into seconds."""
    value = value.strip()
    try:
        res = float(value)
    except ValueError:
        pos = 0
        res = 0.0
        for match in _DURATION_RE.finditer(value):
            if match.start() != pos:
                break
            res += float(match[1]) * _DURATION_UNITS[match[2]]
            pos = match.end()
        if pos != len(value) or not value:
            raise ValueError(f'Invalid duration {value!r}')
    if not 0 < res < float('inf'):
        raise ValueError(f'Duration must be positive, got {value!r}')
    return res
