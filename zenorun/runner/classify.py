from pathlib import Path

from zenorun.schemas import ProjectType

PYTHON_MANIFESTS = ('pyproject.toml', 'requirements.txt', 'Pipfile', 'setup.py')
NODE_MANIFESTS = ('package.json',)

# monorepo layout: python api service next to a node frontend
API_SUBDIRS = ('api', 'backend')
UI_SUBDIRS = ('ui', 'frontend')


def _has_any(path: Path, names: tuple[str, ...]) -> bool:
    return any((path / name).is_file() for name in names)


def _subdir_has_any(
    path: Path, subdirs: tuple[str, ...], names: tuple[str, ...]
) -> bool:
    return any(_has_any(path / subdir, names) for subdir in subdirs)


def classify_project(path: Path) -> ProjectType:
    if _subdir_has_any(path, API_SUBDIRS, PYTHON_MANIFESTS) and _subdir_has_any(
        path, UI_SUBDIRS, NODE_MANIFESTS
    ):
        return ProjectType.polyglot

    python = _has_any(path, PYTHON_MANIFESTS)
    node = _has_any(path, NODE_MANIFESTS)
    if python and node:
        return ProjectType.polyglot
    elif python:
        return ProjectType.python
    elif node:
        return ProjectType.node
    return ProjectType.unknown
