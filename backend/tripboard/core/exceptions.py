"""
Domain exceptions raised by services and translated to HTTP responses in main.py.
"""


class TripboardError(Exception):
    """Base class for errors raised by the planning core."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DataIntegrityError(TripboardError):
    """Stored data violates an invariant (e.g. splits do not sum to the expense)."""
    status_code = 409


class PermissionDeniedError(TripboardError):
    """Acting user lacks the role required for the operation."""
    status_code = 403


class PhaseTransitionError(TripboardError):
    """Requested phase change is not allowed from the current phase."""
    status_code = 400


class NotFoundError(TripboardError):
    """Referenced trip, proposal or expense does not exist."""
    status_code = 404


class StoreError(TripboardError):
    """A write to the store failed part-way through a multi-step action."""
    status_code = 503
