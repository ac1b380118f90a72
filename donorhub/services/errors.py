# donorhub/services/errors.py
from typing import Any, Dict, Optional


class DonorHubError(Exception):
    """Base class for rule violations raised by the services.

    ``details`` names the failing precondition and carries the current and
    required values so a handler can render a message without recomputing.
    """

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidInputError(DonorHubError):
    code = "invalid_input"
    status_code = 400


class ForbiddenError(DonorHubError):
    code = "forbidden"
    status_code = 403


class NotFoundError(DonorHubError):
    code = "not_found"
    status_code = 404


class IneligibleDonorError(DonorHubError):
    code = "ineligible_donor"
    status_code = 422


class SlotUnavailableError(DonorHubError):
    code = "slot_unavailable"
    status_code = 409


class CancellationWindowError(DonorHubError):
    code = "cancellation_window"
    status_code = 409


class InvalidStateTransitionError(DonorHubError):
    code = "invalid_state_transition"
    status_code = 409


class InvalidStateError(DonorHubError):
    code = "invalid_state"
    status_code = 409


class InsufficientInventoryError(DonorHubError):
    code = "insufficient_inventory"
    status_code = 409
