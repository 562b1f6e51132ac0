"""issueloom: issue tracker for AI agent teams with convention-based project discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("issueloom")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from issueloom.core import Issue, IssueloomDB, NotFound

__all__ = ["Issue", "IssueloomDB", "NotFound", "__version__"]
