"""Error types raised by the registration primitives."""


class InvalidInputError(ValueError):
    """
    Raised when a point set cannot be used for registration.

    Covers empty point sets, mismatched lengths of paired sets, arrays that
    are not shaped ``(N, 3)`` and correspondence queries without a target.
    Numerical ill-conditioning is not an error and never raises this.
    """
