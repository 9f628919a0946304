from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    AWS_ERROR = 4
    RUNTIME_ERROR = 5


class ReservationReportError(Exception):
    """Base error for the reservation report agent."""


class ConfigError(ReservationReportError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(ReservationReportError):
    """Raised when an account's AWS session cannot be resolved."""


class AWSClientError(ReservationReportError):
    """Raised when AWS SDK operations fail in a non-retriable way."""


class PaginationExhaustedError(ReservationReportError):
    """Raised when a paginated query keeps returning continuation tokens past its page budget."""


class PublishError(ReservationReportError):
    """Raised when the report cannot be merged or written to the provider cache."""


class ExportError(ReservationReportError):
    """Raised when exporting artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, AWSClientError) or is_aws_error(exc):
        return int(ExitCode.AWS_ERROR)
    if isinstance(exc, ReservationReportError):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def _aws_error_types() -> tuple[type[BaseException], ...]:
    from botocore.exceptions import BotoCoreError, ClientError

    return (ClientError, BotoCoreError)


def is_aws_error(exc: BaseException) -> bool:
    """
    Return True if the exception looks like a boto3/botocore error.
    """
    if isinstance(exc, _aws_error_types()):
        return True
    return exc.__class__.__module__.startswith(("botocore.", "boto3."))


def aws_error_code(exc: BaseException) -> str | None:
    """
    Return the service error code (e.g. 'RequestLimitExceeded') for ClientError instances.
    """
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    code = (response.get("Error") or {}).get("Code")
    return str(code) if code else None


def map_aws_error(exc: BaseException, context: str) -> AWSClientError | None:
    """
    Wrap AWS SDK errors with AWSClientError for consistent exit codes and log messages.
    """
    if not is_aws_error(exc):
        return None
    code = aws_error_code(exc)
    if code:
        return AWSClientError(f"{context}: [{code}] {exc}")
    return AWSClientError(f"{context}: {exc}")
