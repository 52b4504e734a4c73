"""
Application-wide constants.
Centralizes all hardcoded values to prevent duplication and improve maintainability.
"""
from typing import Dict, List


class MenuConstants:
    """Constants related to meal plans and meal slots."""

    DAYS_OF_WEEK: List[str] = [
        "monday",
        "tuesday",
        "wednesday",
        "thursday",
        "friday",
        "saturday",
        "sunday"
    ]

    MEAL_TYPES: List[str] = ["breakfast", "lunch", "dinner"]

    # Words that point at a slot without naming it
    MEAL_TYPE_SYNONYMS: Dict[str, List[str]] = {
        "breakfast": ["breakfast", "morning"],
        "lunch": ["lunch", "noon", "afternoon"],
        "dinner": ["dinner", "evening", "night"],
    }

    PLACEHOLDER_DISH: str = "Unknown Meal"
    PLACEHOLDER_RECIPE: str = "Delicious and nutritious meal"
    PLACEHOLDER_TAG: str = "meal"

    @classmethod
    def is_valid_day(cls, day: str) -> bool:
        """Check if day name is valid."""
        return day.lower() in cls.DAYS_OF_WEEK

    @classmethod
    def is_valid_meal(cls, meal: str) -> bool:
        """Check if meal type is valid."""
        return meal.lower() in cls.MEAL_TYPES


class NutritionConstants:
    """Energy conversion and backfill rules for meal slots."""

    KCAL_PER_GRAM_PROTEIN: int = 4
    KCAL_PER_GRAM_CARBS: int = 4
    KCAL_PER_GRAM_FAT: int = 9

    # Share of calories assigned to each macro when macros are missing
    PROTEIN_RATIO: float = 0.20
    CARBS_RATIO: float = 0.50
    FAT_RATIO: float = 0.30

    BASELINE_CALORIES: int = 300
    HEALTHY_CALORIE_LIMIT: int = 400
    QUICK_PREP_MINUTES: int = 20


class LimitsConstants:
    """Limits and thresholds used throughout the application."""

    # Memory and history
    MEMORY_HISTORY_LIMIT: int = 10

    # Replacement suggestions
    REPLACEMENT_COUNT: int = 3
    CONTEXTUAL_SUGGESTION_COUNT: int = 5
    SIMILARITY_THRESHOLD: float = 0.6
    CACHE_KEY_FRAGMENT_LENGTH: int = 200

    # Recipe mode treats short messages as recipe requests
    RECIPE_MODE_SHORT_MESSAGE: int = 50

    # Meal feedback kept per user, and the rating at or below which a meal is avoided
    FEEDBACK_HISTORY_LIMIT: int = 20
    LOW_RATING: int = 2

    # Plan days shown as "recent meals" in situational suggestions
    RECENT_MEAL_DAYS: int = 3

    # Raw AI output kept in logs for diagnosis
    RAW_RESPONSE_LOG_PREFIX: int = 1000


# Export all constants for easy import
__all__ = [
    'MenuConstants',
    'NutritionConstants',
    'LimitsConstants'
]
