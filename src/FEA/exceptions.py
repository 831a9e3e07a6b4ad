"""Error types raised by the FEA pipeline.

Every error derives from :class:`FEAError` and from the closest builtin, so
callers may catch either ``FEAError`` or e.g. ``ValueError``.
"""


class FEAError(Exception):
    """Base class for all FEA errors."""


class ConfigurationError(FEAError, ValueError):
    """Missing or invalid solver, mesh or boundary settings."""


class UnsupportedConfigurationError(FEAError, NotImplementedError):
    """Dimension/order combination without an implementation."""


class DegenerateElementError(FEAError, ArithmeticError):
    """Element with a zero or negative Jacobian determinant."""


class BoundaryConditionError(FEAError, ValueError):
    """Unknown, malformed or conflicting boundary condition."""


class MissingCoordinateError(FEAError, ValueError):
    """Natural coordinate required by the element dimension was not given."""


class SingularSystemError(FEAError, ArithmeticError):
    """The assembled linear system cannot be factorized."""
