"""
Error taxonomy for the meal replacement pipeline.
Routes translate these into user-safe responses; services raise them.
"""
from typing import List, Optional


class NutriPlanError(Exception):
    """Base class for errors raised by NutriPlan services."""

    user_message = "Something went wrong while handling your request."


class NotFoundError(NutriPlanError):
    """A plan, day or user that the request depends on does not exist."""

    user_message = "I couldn't find what you were looking for."


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id

    user_message = "I couldn't find your account."


class MealPlanNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"No meal plan found for user {user_id}")
        self.user_id = user_id

    user_message = "I couldn't find your meal plan. Generate a weekly plan first and I can help you change it."


class DayNotFoundError(NotFoundError):
    def __init__(self, day: str):
        super().__init__(f"Day {day} not found in meal plan")
        self.day = day

    @property
    def user_message(self) -> str:
        return f"I couldn't find {self.day.capitalize()} in your meal plan, so I couldn't change that meal."


class AIUnavailableError(NutriPlanError):
    """The AI client is not configured or every model and retry failed."""

    user_message = "Our meal assistant is temporarily unavailable. Please try again in a moment."

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class UnparseableAIResponseError(NutriPlanError):
    """The AI answered but its output could not be coerced into JSON."""

    user_message = "I had trouble putting together meal ideas just now. Please try asking again."

    def __init__(self, message: str, raw_prefix: str = ""):
        super().__init__(message)
        self.raw_prefix = raw_prefix


class ReplacementValidationError(NutriPlanError):
    """A caller-supplied replacement is missing required fields."""

    def __init__(self, message: str, fields: List[str]):
        super().__init__(message)
        self.fields = fields

    @property
    def user_message(self) -> str:
        return f"The selected replacement is invalid: missing {', '.join(self.fields)}."


class DataIntegrityWarning(UserWarning):
    """The value read back after saving a meal differs from what was written."""
