"""Error taxonomy for the dispute services.

Routes let these propagate; the app-level handler renders them as
{'error': message} with the matching HTTP status.
"""


class DisputeError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidArgument(DisputeError):
    """Bad deadline, empty title, malformed vote and similar input problems."""
    status_code = 400


class Forbidden(DisputeError):
    """Caller lacks the membership or role the operation needs."""
    status_code = 403


class NotFound(DisputeError):
    status_code = 404


class Conflict(DisputeError):
    """Request clashes with current state (duplicate vote, closed phase)."""
    status_code = 409


class InvalidTransition(Conflict):
    """Lifecycle transition not allowed from the dispute's current status."""

    def __init__(self, from_status, operation):
        super().__init__(f'Cannot {operation} a dispute in "{from_status}" status')
        self.from_status = from_status
        self.operation = operation


class Unavailable(DisputeError):
    """Storage or another collaborator failed."""
    status_code = 503
