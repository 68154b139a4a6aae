from __future__ import annotations


class ApiError(Exception):
    """Error raised by services and converted to a structured result at the engine boundary.

    A status code of 404 means the addressed row is missing or belongs to another tenant.
    Any other 4xx status is a validation failure whose message is safe to show to users.
    """

    def __init__(self, error_code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.status_code = status_code

    @property
    def kind(self) -> str:
        if self.status_code == 404:
            return "not_found"
        if 400 <= self.status_code < 500:
            return "validation"
        return "internal"

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"
