"""Shell command relay that streams process output into chat messages."""

from .version import __version__  # noqa: F401
