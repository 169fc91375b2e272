"""snapsync CLI: back up a directory tree over ssh."""

from ._helpers import main  # noqa: F401  entry point

# Import command modules to register Click commands with the main group.
from . import _backup, _show  # noqa: F401
