from typing import Dict, Any, Optional


class AxonError(Exception):
    """Base error carrying an error code and HTTP status"""

    def __init__(
        self,
        message: str,
        code: str = "AXON_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(AxonError):
    """Malformed input, rejected before any I/O"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", 400, details)


class NotFoundError(AxonError):

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            404,
            {"resource": resource, "id": identifier}
        )


class ConfigurationError(AxonError):

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", 500, details)


class TokenBudgetExceededError(AxonError):

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TOKEN_BUDGET_EXCEEDED", 400, details)


class TokenLimitError(TokenBudgetExceededError):
    """Final prompt is larger than the model ceiling; re-synthesize with a smaller budget"""

    def __init__(self, actual_tokens: int, max_tokens: int):
        super().__init__(
            f"Prompt exceeds token limit: {actual_tokens} > {max_tokens}",
            {"actual_tokens": actual_tokens, "max_tokens": max_tokens}
        )
        self.actual_tokens = actual_tokens
        self.max_tokens = max_tokens
