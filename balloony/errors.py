"""
Exception hierarchy for Balloony.

Every failure the pipeline expects to see is one of these, so callers can
decide between dropping a batch, dropping a record, or omitting a field.
"""


class BalloonyError(Exception):
    """Base class for all Balloony errors."""


class ConfigError(BalloonyError):
    """Required configuration is missing or invalid. Fatal at startup."""


class MalformedInputError(BalloonyError):
    """A raw feed payload could not be used. The batch is dropped."""


class EmptyBatchError(MalformedInputError):
    """A batch produced no usable telemetry records."""


class LookupFailure(BalloonyError):
    """
    An external collaborator (geocoder, prediction API, renderer,
    notification channel or session store) failed or was unreachable.

    The current record is dropped and its session left untouched.
    """


class SerialDecodeError(BalloonyError):
    """A sonde serial could not be decoded."""


class SerialTooShortError(SerialDecodeError):
    """Serial is shorter than the four characters needed for a date."""


class UnknownYearCodeError(SerialDecodeError):
    """First serial character is not in the year code table."""


class EmptyPointSetError(BalloonyError):
    """Nearest-point search was asked to search an empty set."""
