"""
Error taxonomy for the tracker core.

Dose calculations never raise. These exceptions are for the boundaries:
settings validation, the load/import boundary and the persistence transport.
"""


class TrackerError(Exception):
    """Base class for all tracker errors."""


class InvalidConfiguration(TrackerError):
    """Protocol settings that would produce infinite or NaN doses."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class MalformedPersistedData(TrackerError):
    """A stored or imported document failed structural validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors) or "malformed document")


class TransportFailure(TrackerError):
    """The persistence backend could not be read or written."""
