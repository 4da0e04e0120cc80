class TripIntelError(Exception):
    """Base class for all trip-intel errors."""


class ConfigError(TripIntelError):
    """A required setting or credential is missing or invalid."""


class DocumentFetchError(TripIntelError):
    """The uploaded document could not be downloaded or decoded."""


class ClassificationError(TripIntelError):
    """The vision model could not classify the document."""


class ExtractionFailure(TripIntelError):
    """The vision model call for structured extraction failed outright."""


class PlacesAPIError(TripIntelError):
    def __init__(self, message: str, status: int = 0) -> None:
        super().__init__(message)
        self.status = status
