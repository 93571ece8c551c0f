from typing import List, Optional

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for typed failures surfaced to the transport layer"""

    error_code = "error"

    def __init__(self, status_code: int, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFound(DomainError):
    """Entity is absent or intentionally hidden from the caller"""

    error_code = "not_found"

    def __init__(self, detail: str = "Not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, detail)


class Forbidden(DomainError):
    """Authenticated, but not allowed to perform this mutation"""

    error_code = "forbidden"

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


class Conflict(DomainError):
    """Domain-level uniqueness violation"""

    error_code = "conflict"

    def __init__(self, detail: str = "Already exists"):
        super().__init__(status.HTTP_409_CONFLICT, detail)


class BusinessRuleViolation(DomainError):
    """Well-formed request that breaks a business rule"""

    error_code = "business_rule"

    def __init__(self, detail: str):
        super().__init__(status.HTTP_422_UNPROCESSABLE_ENTITY, detail)


class IntegrityViolation(DomainError):
    """Storage layer rejected the write"""

    error_code = "integrity_violation"

    def __init__(self, detail: str = "Referential integrity failure"):
        super().__init__(status.HTTP_409_CONFLICT, detail)


class ValidationFailed(DomainError):
    """Malformed input, with one entry per offending field"""

    error_code = "validation_failed"

    def __init__(self, errors: List[dict], detail: str = "Validation failed"):
        super().__init__(status.HTTP_422_UNPROCESSABLE_ENTITY, detail)
        self.errors = errors


class AuthenticationRequired(DomainError):
    """Exception raised when authentication is required"""

    error_code = "authentication_required"

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            detail,
            headers={"WWW-Authenticate": "Bearer"},
        )
