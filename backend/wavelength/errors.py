"""Game errors.

Every error raised by the room store, the round state machine and the
matchmaking queue derives from ``WavelengthError`` so the HTTP layer can
render them uniformly as ``{"error": message}``.
"""


class WavelengthError(Exception):
    """Base class for all game errors."""
    status_code = 400

    def __init__(self, message=None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class ValidationError(WavelengthError):
    """Malformed input."""
    status_code = 400


class AuthorizationError(WavelengthError):
    """Not allowed to perform this action."""
    status_code = 403


class NotFoundError(WavelengthError):
    """Room not found, check the code."""
    status_code = 404


class CapacityError(WavelengthError):
    """Room is full."""
    status_code = 409


class InvalidStateError(WavelengthError):
    """Action not allowed in the current phase."""
    status_code = 409

    def __init__(self, message=None, benign=False):
        # benign: the requested effect was already applied (double submission)
        self.benign = benign
        super().__init__(message)
