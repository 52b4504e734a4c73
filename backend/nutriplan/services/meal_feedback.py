"""
Learns from how users rate replacement meals.

Feedback is kept with the user's onboarding preferences. A replacement
rated at or below LimitsConstants.LOW_RATING is added to the meals to
avoid, which build_preference_context folds into foods_to_avoid for
later suggestion prompts.
"""
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from nutriplan.core.constants import LimitsConstants
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_users
from nutriplan.db.schema import MealFeedbackRequest, MealFeedbackResult
from nutriplan.db.session import run_sync

logger = get_logger("services.meal_feedback")

IMPROVED_CATEGORIES = [
    "ingredient preferences",
    "cuisine preferences",
    "meal complexity preferences",
    "nutritional priorities",
]


async def record_meal_feedback(db: Session, feedback: MealFeedbackRequest) -> MealFeedbackResult:
    """
    Store one rating and update the meals to avoid.

    Raises:
        UserNotFoundError: The user does not exist
    """
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "originalMeal": feedback.original_meal,
        "chosenReplacement": feedback.chosen_replacement,
        "rating": feedback.rating,
        "feedback": feedback.feedback,
        "reason": feedback.reason,
    }
    avoid = feedback.chosen_replacement if feedback.rating <= LimitsConstants.LOW_RATING else None

    user = await run_sync(
        crud_users.user.add_meal_feedback,
        db,
        feedback.user_id,
        entry,
        avoid=avoid,
        history_limit=LimitsConstants.FEEDBACK_HISTORY_LIMIT,
    )
    preferences = user.preferences or {}
    logger.info(
        f"Recorded meal feedback for user {user.id}: rating {feedback.rating}"
        + (f", avoiding '{avoid}'" if avoid else "")
    )
    return MealFeedbackResult(
        user_id=user.id,
        feedback_count=len(preferences.get("mealFeedback") or []),
        avoided_meals=list(preferences.get("dislikedMeals") or []),
        improved_categories=list(IMPROVED_CATEGORIES),
    )
