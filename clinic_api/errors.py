"""
Domain errors for booking and payment flows.

Services raise these; main.py maps them to JSON responses of the form
{"detail": message} with the class status code.
"""


class ClinicError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Malformed or out-of-range input"""

    status_code = 400


class NotFoundError(ClinicError):
    """Unknown doctor, appointment, payment, service or schedule"""

    status_code = 404


class ConflictError(ClinicError):
    """Double booking or a duplicate action"""

    status_code = 409


class StateError(ClinicError):
    """Action not allowed for the current status"""

    status_code = 400


class ProviderError(ClinicError):
    """Payment provider unreachable or rejected the request (transient)"""

    status_code = 502
