"""prettydoc: compose Markdown documents into one styled HTML or PDF document."""

from .version import __version__

__all__ = ["__version__"]
