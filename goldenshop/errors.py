"""
Error taxonomy shared by the workflows and the HTTP layer.

Every error carries the HTTP status it maps to so the exception handler in
goldenshop.main can render it without a lookup table.
"""
from typing import Any, Dict, Optional


class ShopError(Exception):
    status_code = 400
    title = "Request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.title)
        self.message = message or self.title

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.title, "details": self.message}


class Unauthenticated(ShopError):
    status_code = 401
    title = "Authentication required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "User must be authenticated")


class AuthenticationFailed(ShopError):
    status_code = 401
    title = "Incorrect email or password"


class Forbidden(ShopError):
    status_code = 403
    title = "Admins only"


class AlreadyInCart(ShopError):
    status_code = 409
    title = "Item already in cart"


class InvalidSelection(ShopError):
    status_code = 400
    title = "Invalid selection"


class EmptyCart(ShopError):
    status_code = 400
    title = "Your cart is empty"


class InvalidSignup(ShopError):
    status_code = 400
    title = "Invalid signup"

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["fields"] = self.errors
        return body


class RemoteOperationFailed(ShopError):
    status_code = 502
    title = "Remote operation failed"


class RecordNotFound(RemoteOperationFailed):
    status_code = 404
    title = "Record not found"


class PartialFailure(RemoteOperationFailed):
    """A batch write where at least one task failed.

    `report` is the goldenshop.batch.BatchReport of the whole batch.
    """

    title = "Batch operation partially failed"

    def __init__(self, report, message: Optional[str] = None):
        failed = len(report.failed)
        total = failed + len(report.succeeded)
        super().__init__(message or f"{failed} of {total} operations failed")
        self.report = report

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["report"] = self.report.model_dump()
        return body
