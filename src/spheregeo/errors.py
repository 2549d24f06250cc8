"""
Exception hierarchy for spherical geography construction and operators.
"""


class GeographyError(Exception):
    """Base class for all errors raised by spheregeo."""


class UnsupportedOperation(GeographyError):
    """A capability was invoked on a geography variant that does not support it."""


class InvalidGeometry(GeographyError, ValueError):
    """A constructed loop failed validation; the message is the validator's diagnostic."""


class MissingInput(GeographyError, ValueError):
    """A required element of an input collection was missing."""


class GeometryTypeError(GeographyError, TypeError):
    """A builder received geometry events of a kind it cannot consume."""


class BuilderStateError(GeographyError, RuntimeError):
    """The event protocol was violated, or a builder was reused after build()."""
