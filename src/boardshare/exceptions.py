"""Custom exception hierarchy for the sharing engine."""


class BoardShareError(Exception):
    """Base exception for all sharing errors."""


class NotFoundError(BoardShareError):
    """Raised when a share request, source item, or grant does not exist for the caller."""


class ConflictError(BoardShareError):
    """Raised on a duplicate active share or when a request is already terminal."""


class ForbiddenError(BoardShareError):
    """Raised when sharing preferences block the operation or a link has expired."""


class DependencyMissingError(BoardShareError):
    """Raised when a grant's required parent grant cannot be resolved."""


class InternalInvariantViolation(BoardShareError):
    """Raised when a write that must return a row returned none."""


class InvalidDecisionError(BoardShareError):
    """Raised when the decisions supplied for a request tree are malformed."""
