"""
ManifestFinder: find the streaming manifest (.m3u8) a web page requests.

A headless browser opens the page, every outbound request is intercepted,
and the first URL ending in .m3u8 is returned. The FastAPI server exposes
this as GET /scrape.
"""

__version__ = "0.1.0"

# Core imports
from .core.config import FinderConfig
from .finder import ManifestFinder, SearchOutcome, SearchReport

__all__ = [
    "FinderConfig",
    "ManifestFinder",
    "SearchOutcome",
    "SearchReport",
    "__version__",
]
