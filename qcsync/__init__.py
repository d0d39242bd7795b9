"""Quality-control scanning sync layer backed by a Google Sheets web app."""
from __future__ import annotations

from qcsync.version import __version__

__all__ = ["__version__"]
