# Error taxonomy shared by the portal core and the HTTP layer.
# Every core failure carries a machine-stable code plus a human message;
# the HTTP layer only maps status_code and never inspects the message.

from typing import Optional


class PortalError(Exception):
    status_code = 500
    code = "internal_error"
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


# ---------------------------------------------------------------------------
# 401 / 403
# ---------------------------------------------------------------------------
class Unauthenticated(PortalError):
    status_code = 401
    code = "unauthenticated"
    message = "Not authenticated"


class Unauthorized(PortalError):
    status_code = 403
    code = "unauthorized"
    message = "Insufficient permissions"


class Forbidden(Unauthorized):
    code = "forbidden"
    message = "Access denied"


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------
class NotFound(PortalError):
    status_code = 404
    code = "not_found"
    message = "Not found"

    def __init__(self, what: str = "Resource", message: Optional[str] = None):
        super().__init__(message or f"{what} not found")
        self.what = what


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------
class InvalidInput(PortalError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid input"


class InvalidOption(InvalidInput):
    code = "invalid_option"
    message = "Invalid option"


class InvalidStatus(InvalidInput):
    code = "invalid_status"
    message = "Invalid status"


class InvalidTransition(InvalidInput):
    code = "invalid_transition"
    message = "Status transition not allowed"


class RoleMismatch(InvalidInput):
    code = "role_mismatch"
    message = "Assignee must be a volunteer"


class NotSignable(InvalidInput):
    code = "not_signable"
    message = "Petition not open for signing"


class DuplicateUser(InvalidInput):
    code = "duplicate_user"
    message = "Username already exists"


# ---------------------------------------------------------------------------
# 409
# ---------------------------------------------------------------------------
class Conflict(PortalError):
    status_code = 409
    code = "conflict"
    message = "Conflict"


class DuplicateVote(Conflict):
    code = "duplicate_vote"
    message = "User already voted on this poll"


class DuplicateSignature(Conflict):
    code = "duplicate_signature"
    message = "User already signed this petition"


class AlreadyAssigned(Conflict):
    code = "already_assigned"
    message = "This item is already assigned to a volunteer"


# ---------------------------------------------------------------------------
# 410
# ---------------------------------------------------------------------------
class Expired(PortalError):
    status_code = 410
    code = "expired"
    message = "Poll has expired"
