"""Errors raised by a harvest session.

All of them are run-scoped: they abort the current session and are caught at
the run boundary (scheduler or CLI), never inside a step.
"""

from typing import Optional


class HarvestError(Exception):
    """Base class for session failures."""

    category = "harvest"


class AcquisitionError(HarvestError):
    """Browser, context or page could not be started."""

    category = "acquisition"


class NavigationError(HarvestError):
    """A navigation failed, timed out or returned no response."""

    category = "navigation"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class SelectorNotFoundError(HarvestError):
    """An expected element is not on the page."""

    category = "selector"

    def __init__(self, selector: str, message: Optional[str] = None):
        super().__init__(message or f"No element matches selector {selector!r}")
        self.selector = selector


class OutputWriteError(HarvestError):
    """An output file could not be written."""

    category = "io"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
