# =============================================================================
# Error Handling Types (Result + ErrorReport + compile exceptions)
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar('T')


class ErrorType(Enum):
    FILE_NOT_FOUND = "file_not_found"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    PERMISSION_ERROR = "permission_error"


@dataclass
class Error:
    error_type: ErrorType
    message: str
    context: dict = field(default_factory=dict)
    original_exception: Exception = None


@dataclass
class Result(Generic[T]):
    success: bool
    value: T = None
    error: Error = None

    @staticmethod
    def ok(value: T) -> 'Result[T]':
        return Result(success=True, value=value)

    @staticmethod
    def err(error: Error) -> 'Result[T]':
        return Result(success=False, error=error)

    def is_ok(self) -> bool:
        return self.success

    def is_err(self) -> bool:
        return not self.success


class CompileError(Exception):
    """
    Base class for failures that abort a compilation.

    Args:
        message: Human readable description
        path: Locator of the offending entry, e.g. "windows[1].panes[0].split"
        context: Extra structured details (window/pane index, field name)
    """

    error_type = ErrorType.VALIDATION_ERROR

    def __init__(self, message: str, path: str = "", context: dict | None = None):
        self.message = message
        self.path = path
        self.context = dict(context or {})
        super().__init__(f"{path}: {message}" if path else message)

    def to_error(self) -> Error:
        context = dict(self.context)
        if self.path:
            context["path"] = self.path
        return Error(
            error_type=self.error_type,
            message=str(self),
            context=context,
            original_exception=self
        )


class ParseError(CompileError):
    """The raw document does not have the expected tree shape."""

    error_type = ErrorType.PARSE_ERROR


class ValidationError(CompileError):
    """A well-shaped document violates a model invariant."""

    error_type = ErrorType.VALIDATION_ERROR


@dataclass
class ErrorReport:
    errors: list[Error] = field(default_factory=list)
    warnings: list[Error] = field(default_factory=list)

    def add_error(self, error: Error):
        self.errors.append(error)
        # bind, not kwargs: messages may quote user text containing braces
        logger.bind(
            operation="error_report",
            status="error",
            error_type=error.error_type.value,
            **error.context
        ).error(error.message)

    def add_warning(self, error: Error):
        self.warnings.append(error)
        logger.bind(
            operation="error_report",
            status="warning",
            error_type=error.error_type.value,
            **error.context
        ).warning(error.message)

    def collect_result(self, result: Result) -> bool:
        """Collect error from Result into report if failed."""
        if result.is_err():
            self.add_error(result.error)
            return False
        return True

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def log_summary(self, op_trace_id: str, operation: str = "error_report"):
        logger.info(
            "Operation complete",
            operation=operation,
            status="failed" if self.has_errors() else "complete",
            trace_id=op_trace_id,
            metrics={
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings)
            }
        )
