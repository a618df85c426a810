"""Shared error classes for the verification engine."""

from __future__ import annotations


class VerificationError(RuntimeError):
    """Base exception for request-fatal verification failures."""

    def __init__(self, message: str, code: str = "VERIFICATION_ERROR", errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.errors = list(errors) if errors else [message]


class RequestValidationError(VerificationError):
    """Raised when the incoming payload is malformed or incomplete."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors), code="400_INVALID_REQUEST", errors=errors)


class ConfigurationError(VerificationError):
    """Raised when explorer credentials or registry entries are missing."""

    def __init__(self, message: str = "API keys not configured", *, missing: list[str] | None = None) -> None:
        super().__init__(message, code="500_CONFIGURATION")
        self.missing = list(missing or [])


class CompilationError(VerificationError):
    """Raised when the compiler reports error-severity diagnostics."""

    def __init__(self, message: str, diagnostics: list[str] | None = None) -> None:
        super().__init__(message, code="400_COMPILATION_FAILED", errors=diagnostics or [message])
        self.diagnostics = list(diagnostics or [])


class VerificationTimeoutError(VerificationError):
    """Raised when the whole fan-out exceeds the request deadline."""

    def __init__(self, message: str = "verification timed out") -> None:
        super().__init__(message, code="500_VERIFICATION_TIMEOUT")
