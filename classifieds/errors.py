# classifieds/errors.py
"""Typed failures raised by the core and mapped to responses by the API layer."""


class MarketplaceError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self):
        return {"error": self.code, "detail": self.detail}


class ValidationError(MarketplaceError):
    code = "validation_error"
    status_code = 400


class CycleError(ValidationError):
    code = "category_cycle"


class NotFoundError(MarketplaceError):
    code = "not_found"
    status_code = 404


class ConflictError(MarketplaceError):
    code = "conflict"
    status_code = 409


class AuthorizationError(MarketplaceError):
    code = "forbidden"
    status_code = 403


class InvalidStateError(MarketplaceError):
    code = "invalid_state"
    status_code = 409


class StoreTimeoutError(MarketplaceError, TimeoutError):
    code = "store_timeout"
    status_code = 504
