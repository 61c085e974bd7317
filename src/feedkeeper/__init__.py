"""Feed subscription management: sources, groups and OPML import/export."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
