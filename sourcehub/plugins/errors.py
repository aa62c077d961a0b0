"""Plugin error types.

Every stage of the install pipeline raises its own error kind so callers can tell
which stage failed. The manager re-raises these unchanged.
"""

from __future__ import annotations

from typing import List, Optional


class PluginError(RuntimeError):
    """Base error for the plugin system.

    ``last_state`` is the last pipeline state the install reached before failing
    (None when the failure came before the first state, e.g. during fetch).
    """

    stage = "plugin"

    def __init__(self, message: str, plugin_id: Optional[str] = None):
        super().__init__(message)
        self.plugin_id = plugin_id
        self.last_state: Optional[str] = None


class InvalidDescriptorError(PluginError):
    """Descriptor cannot be installed (e.g. no expected digest)."""

    stage = "descriptor"


class CatalogError(PluginError):
    """Catalog document could not be fetched or has the wrong shape."""

    stage = "catalog"


class PluginNotFoundError(PluginError):
    """Unknown plugin id in the catalog or the registry."""

    stage = "lookup"


class FetchError(PluginError):
    """Network fetch failed (HTTP status, connection error, exhausted retries)."""

    stage = "fetch"

    def __init__(
        self,
        message: str,
        url: str,
        status: Optional[int] = None,
        attempts: int = 0,
        plugin_id: Optional[str] = None,
    ):
        super().__init__(message, plugin_id=plugin_id)
        self.url = url
        self.status = status
        self.attempts = attempts


class FetchTimeoutError(FetchError):
    """Fetch did not complete within the caller's timeout."""


class HtmlInsteadOfCodeError(PluginError):
    """Artifact URL served a browsable HTML page instead of source code."""

    stage = "fetch"

    def __init__(self, message: str, url: str, plugin_id: Optional[str] = None):
        super().__init__(message, plugin_id=plugin_id)
        self.url = url


class IntegrityMismatchError(PluginError):
    """Downloaded bytes do not match the declared digest."""

    stage = "verify"

    def __init__(self, message: str, expected: str, actual: str, plugin_id: Optional[str] = None):
        super().__init__(message, plugin_id=plugin_id)
        self.expected = expected
        self.actual = actual


class ValidationFailedError(PluginError):
    """Source text failed the shape check or hit the denylist."""

    stage = "validate"

    def __init__(self, message: str, reasons: List[str], plugin_id: Optional[str] = None):
        super().__init__(message, plugin_id=plugin_id)
        self.reasons = list(reasons)


class ActivationError(PluginError):
    """Plugin code could not be executed, resolved or instantiated."""

    stage = "activate"
