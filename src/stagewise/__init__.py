"""Stagewise: configurable stage-transition engine for projects, with convention-based discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("stagewise")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from stagewise.core import Project, StagewiseDB

__all__ = ["Project", "StagewiseDB", "__version__"]
