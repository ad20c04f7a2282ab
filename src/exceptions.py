"""
Custom exception hierarchy for the QSTUDY system.
Provides structured error handling with user-friendly messages and proper categorization.
"""

from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification."""

    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    DATABASE = "database"
    NETWORK = "network"
    SYSTEM = "system"
    USER_INPUT = "user_input"


class QStudyError(Exception):
    """
    Base error for the study engine.

    Carries a technical message plus an optional message that is safe to show
    to researchers or participants.
    """

    default_user_message = "An unexpected error occurred. Please try again."
    default_category = ErrorCategory.SYSTEM
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
        }


# Validation Errors
class ValidationError(QStudyError):
    """Base class for validation errors."""

    default_user_message = "Invalid input provided. Please check your data and try again."
    default_category = ErrorCategory.VALIDATION
    default_severity = ErrorSeverity.LOW

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", None) or {}
        if field:
            details.setdefault("field", field)
        super().__init__(message, details=details, **kwargs)
        self.field = field


class GridValidationError(ValidationError):
    """A grid configuration violates one of its structural invariants."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, field="grid", user_message=message, **kwargs)


class GridShapeError(ValidationError):
    """A distribution shape cannot be generated for the requested dimensions."""

    def __init__(self, shape: str, column_count: int, total_cells: int, reason: str) -> None:
        super().__init__(
            f"Cannot generate '{shape}' shape for {column_count} columns and "
            f"{total_cells} cells: {reason}",
            field="grid",
            user_message=f"The grid needs at least one cell per column ({reason}).",
            details={
                "shape": shape,
                "column_count": column_count,
                "total_cells": total_cells,
            },
        )


class PlacementValidationError(ValidationError):
    """A q-sort payload does not fit the grid capacity or misses stimuli."""

    def __init__(self, errors: list[str], **kwargs: Any) -> None:
        super().__init__(
            f"Q-sort placements rejected: {'; '.join(errors)}",
            field="placements",
            user_message="Please place every statement into a column with free space.",
            details={"errors": list(errors)},
            **kwargs,
        )
        self.errors = list(errors)


class StudyValidationError(ValidationError):
    """The authored study failed aggregate validation and cannot be saved."""

    def __init__(self, validation_errors: list[dict[str, str]], **kwargs: Any) -> None:
        fields = ", ".join(error["field"] for error in validation_errors)
        super().__init__(
            f"Study validation failed for: {fields}",
            user_message="Please fix the highlighted problems before saving.",
            details={"validation_errors": list(validation_errors)},
            **kwargs,
        )
        self.validation_errors = list(validation_errors)


# Business Logic Errors
class BusinessLogicError(QStudyError):
    """Base class for business logic errors."""

    default_category = ErrorCategory.BUSINESS_LOGIC


class ParticipantFlowError(BusinessLogicError):
    """An action is not allowed at the participant's current step."""

    default_user_message = "This action is not available at the current step."

    def __init__(self, message: str, step: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, details={"step": step} if step else None, **kwargs)


# Persistence Errors
class PersistenceError(QStudyError):
    """Storage could not be reached or refused the operation."""

    default_user_message = "Your changes could not be saved. Please try again."
    default_category = ErrorCategory.DATABASE
    default_severity = ErrorSeverity.HIGH


class RecordNotFoundError(PersistenceError):
    """Requested record does not exist."""

    default_severity = ErrorSeverity.MEDIUM

    def __init__(self, record_type: str, record_id: str, **kwargs: Any) -> None:
        super().__init__(
            f"{record_type} with ID {record_id} not found",
            user_message="The requested item could not be found.",
            details={"record_type": record_type, "record_id": record_id},
            **kwargs,
        )


class ConfigurationError(QStudyError):
    """Configuration error."""

    default_user_message = "System configuration error. Please contact support."
    default_severity = ErrorSeverity.CRITICAL
