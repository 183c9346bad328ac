"""Domain errors raised by the stores and workflows.

Controllers translate these into HTTP responses; nothing below the
controller layer knows about status codes.
"""


class GatewayError(Exception):
    """Base class for all image gateway errors."""


class ValidationError(GatewayError):
    """Upload input was rejected (missing file, wrong type, oversize)."""


class NotFound(GatewayError):
    """No record exists for the requested id."""


class LocalBlobMissing(NotFound):
    """The record exists but its local copy is gone, so it cannot be restored."""


class BlobNotFound(GatewayError):
    """A blob was requested from the local store but is not on disk."""


class RemoteUploadError(GatewayError):
    """The remote asset host refused or failed an upload."""


class RemoteTransportError(GatewayError):
    """A remote call could not be completed; the outcome is unknown."""


class StoreUnavailable(GatewayError):
    """The record store could not be read or written."""
