"""
Error taxonomy for wait-time estimation

Only AttractionNotFound stops an estimate. UpstreamUnavailable and
InvalidWindow are raised close to their source and absorbed by the
estimator, which degrades instead of failing.
"""


class WaitServiceError(Exception):
    """Base class for all wait service errors"""


class AttractionNotFound(WaitServiceError):
    """Requested attraction id does not resolve"""

    def __init__(self, attraction_id: str):
        self.attraction_id = attraction_id
        super().__init__(f"Attraction '{attraction_id}' not found")


class UpstreamUnavailable(WaitServiceError):
    """A data source (history, weather, attractions) could not be read"""

    def __init__(self, source: str, cause: Exception = None):
        self.source = source
        self.cause = cause
        message = f"Upstream source '{source}' unavailable"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class InvalidWindow(WaitServiceError):
    """Look-ahead window is not a positive number of minutes"""

    def __init__(self, minutes):
        self.minutes = minutes
        super().__init__(f"Invalid look-ahead window: {minutes} (must be > 0 minutes)")
