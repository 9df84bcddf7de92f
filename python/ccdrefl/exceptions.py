"""Exceptions for the ccdrefl package."""


class ReductionError(Exception):
    """Base class for errors that abort a reduction run."""

    default_message = "Reduction failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class GeometryError(ReductionError):
    """Raised when a region of interest is out of bounds, overlapping or mistagged."""

    default_message = "Invalid region of interest"

    def __init__(self, message: str | None = None, frame_id: str | None = None):
        self.frame_id = frame_id
        if frame_id is not None:
            message = f"{message or self.default_message} (frame: {frame_id})"
        super().__init__(message)


class EmptyRegionError(GeometryError):
    """Raised when a region of interest contains no pixels."""

    default_message = "Region of interest contains no pixels"


class EmptyGroupError(ReductionError):
    """Raised when an exposure group has no frames to aggregate."""

    default_message = "Cannot aggregate an empty exposure group"


class DomainError(ReductionError):
    """Raised when an angle or wavelength lies outside its physical range."""

    default_message = "Value outside of the physical domain"


class NoOverlapError(ReductionError):
    """Exception raised when a scan segment shares no points with the curve."""

    default_message = "No overlap found between segments"

    def __init__(
        self,
        message: str | None = None,
        prior=None,
        current=None,
    ):
        self.prior = prior
        self.current = current
        message = message or self.default_message
        if prior is not None and current is not None:
            message += f"\nPrior: {prior}\nCurrent: {current}"
        super().__init__(message)


class NonMonotonicError(ReductionError):
    """Raised when an assembled curve cannot be made monotonic in Q."""

    default_message = "Reflectivity curve is not monotonic in Q"


class ConfigError(ReductionError):
    """Raised when there is an error in the reduction configuration."""

    default_message = "Invalid reduction configuration"


class FitsReadError(ReductionError):
    """Raised when there is an error reading a FITS file."""

    default_message = "Failed to read FITS file"

    def __init__(self, message: str | None = None, path=None):
        self.path = path
        if path is not None:
            message = f"{message or self.default_message}: {path}"
        super().__init__(message)


class ReductionWarning(UserWarning):
    """Warning for degraded-precision points in an otherwise valid run."""
