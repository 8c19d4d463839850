"""
Meal Plan Pipeline Errors
=========================

Exception taxonomy for plan generation and revision.

Recoverable (caught by the attempt loop, message fed into the next prompt):
    ParseError, DuplicateMealError, MacroValidationError,
    StructuralError, DietaryViolationError

Terminal:
    ExhaustedRetriesError - raised after the attempt ceiling, wraps the last
    failure message.
"""

from typing import Optional, Dict, Any


class MealPlanError(Exception):
    """
    Base exception for meal plan pipeline errors.

    Attributes:
        message: Human-readable error description
        day: Plan day (1..5) the error belongs to, if any
        details: Additional context (e.g., deviations, offending meal)
    """

    def __init__(
        self,
        message: str,
        day: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.day = day
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.day is not None:
            return f"[day {self.day}] {self.message}"
        return self.message


class RecoverableGenerationError(MealPlanError):
    """A rejected attempt; the caller retries with this message as feedback."""


class ParseError(RecoverableGenerationError):
    """Model reply did not contain a usable JSON object with a meals array."""


class DuplicateMealError(RecoverableGenerationError):
    """A proposed meal repeats or closely resembles an accepted meal."""


class MacroValidationError(RecoverableGenerationError):
    """A day or meal missed its calorie / macro targets."""


class StructuralError(RecoverableGenerationError):
    """Missing or extra (day, meal type) coverage."""


class DietaryViolationError(RecoverableGenerationError):
    """An ingredient matched a restricted keyword."""


class ExhaustedRetriesError(MealPlanError):
    """Raised when every attempt for a day or revision batch was rejected."""

    def __init__(
        self,
        day: Optional[int],
        attempts: int,
        last_error: Optional[str],
        operation: str = "generation"
    ):
        self.attempts = attempts
        self.last_error = last_error
        self.operation = operation
        message = f"{operation} failed after {attempts} attempt(s)"
        if last_error:
            message += f": {last_error}"
        super().__init__(message, day=day, details={"attempts": attempts})


class LLMServiceError(MealPlanError):
    """Chat completion request failed (HTTP error, empty content, timeout)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, details=details)


class ProfileError(MealPlanError):
    """Stored user data cannot be turned into a usable profile."""


ERROR_KINDS = {
    "parse": ParseError,
    "duplicate": DuplicateMealError,
    "macro": MacroValidationError,
    "structural": StructuralError,
    "dietary": DietaryViolationError,
}


def error_from_result(result, day: Optional[int] = None) -> RecoverableGenerationError:
    """
    Map a failed ValidationResult onto its recoverable exception.

    Args:
        result: ValidationResult with valid=False
        day: Day the result belongs to

    Returns:
        Exception instance ready to raise
    """
    error_cls = ERROR_KINDS.get(result.error_kind, MacroValidationError)
    details = {}
    if result.deviations:
        details["deviations"] = dict(result.deviations)
    if result.suggestions:
        details["suggestions"] = list(result.suggestions)
    return error_cls(result.reason, day=day, details=details)
