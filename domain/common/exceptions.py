"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for all business errors."""

    # Whether the caller may repeat the same request and expect a different outcome.
    retryable: bool = False

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class NotFoundException(BusinessException):
    def __init__(self, resource: str, identifier: str):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{resource} not found: {identifier}",
            error_type="NotFound",
            details={"resource": resource, "id": identifier},
        )
