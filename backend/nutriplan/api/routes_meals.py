"""
API routes for replacing and modifying meals in a weekly plan.
"""
from datetime import datetime
from typing import Optional, Tuple

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nutriplan.api.deps import get_engine, get_mutations
from nutriplan.core.config import get_settings
from nutriplan.core.constants import LimitsConstants
from nutriplan.core.exceptions import DayNotFoundError, ReplacementValidationError
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_meal_plans, crud_users
from nutriplan.db.crud_meal_plans import find_day_index
from nutriplan.db.schema import (
    AIUpdateRequest,
    AIUpdateResponse,
    ConfirmReplacementRequest,
    ContextualSuggestions,
    CurrentMealPlanResponse,
    DayPlan,
    IngredientSubstitutions,
    MealFeedbackRequest,
    MealFeedbackResult,
    MealModification,
    MealSituation,
    ModifyMealRequest,
    MutationResult,
    PreferenceContext,
    SaveMealPlanRequest,
    SubstitutionRequest,
    SuggestReplacementRequest,
    SuggestReplacementResponse,
    WeeklyPlan,
)
from nutriplan.db.session import get_db, run_sync
from nutriplan.services.chat.target import resolve_target, today_name
from nutriplan.services.meal_feedback import record_meal_feedback
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine
from nutriplan.services.plan_mutation import PlanMutationService, coerce_slot
from nutriplan.services.preference_context import build_preference_context

logger = get_logger("api.meals")

router = APIRouter()


async def _preferences(db: Session, user_id: str) -> PreferenceContext:
    user = await run_sync(crud_users.get_user, db, user_id)
    return build_preference_context(user, user_id)


async def _resolve_slot(
    db: Session,
    user_id: str,
    text: str,
    day: Optional[str],
    meal_type: Optional[str]
) -> Tuple[str, str]:
    """Fill in a missing day or slot the way the chat does."""
    day = (day or today_name()).lower()
    if meal_type:
        return day, meal_type.lower()

    settings = get_settings()
    plan = await run_sync(crud_meal_plans.meal_plan.get_latest_or_raise, db, user_id)
    target = resolve_target(
        text,
        plan.week,
        day,
        day_only_default_meal=settings.day_only_default_meal,
        vague_policy=settings.vague_target_policy,
    )
    if target is None:
        raise DayNotFoundError(day)
    return target.day, target.meal_type


@router.post("/replace", response_model=SuggestReplacementResponse)
async def suggest_replacement(
    request: SuggestReplacementRequest,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine),
    mutations: PlanMutationService = Depends(get_mutations)
):
    """
    Up to three replacement ideas for a meal.

    The meal is either sent as **current_meal** or looked up in the user's
    plan by **day** and **meal_type**. Nothing is written.
    """
    day, meal_type = request.day, request.meal_type
    if request.current_meal is not None:
        current = coerce_slot(request.current_meal)
    elif day and meal_type:
        current = await mutations.get_current_meal(db, request.user_id, day, meal_type)
    else:
        raise ReplacementValidationError(
            "Send current_meal or both day and meal_type", ["current_meal"]
        )

    preferences = await _preferences(db, request.user_id)
    suggestions = await engine.suggest(current, preferences, request.reason)
    return SuggestReplacementResponse(
        user_id=request.user_id,
        current_meal=current,
        day=day,
        meal_type=meal_type,
        suggestions=suggestions,
    )


@router.post("/confirm-replace", response_model=MutationResult)
async def confirm_replacement(
    request: ConfirmReplacementRequest,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine),
    mutations: PlanMutationService = Depends(get_mutations)
):
    """
    Write a replacement into the plan.

    - **replacement**: The candidate object to apply, as returned by /replace
    - **candidate_index**: Alternatively, the index into suggestions for the
      current meal (served from cache when /replace was just called)
    """
    if request.replacement is not None:
        candidate = request.replacement
    elif request.candidate_index is not None:
        current = await mutations.get_current_meal(db, request.user_id, request.day, request.meal_type)
        preferences = await _preferences(db, request.user_id)
        suggestions = await engine.suggest(current, preferences, request.reason)
        if request.candidate_index >= len(suggestions.replacements):
            raise ReplacementValidationError(
                f"candidate_index {request.candidate_index} is out of range "
                f"({len(suggestions.replacements)} suggestion(s))",
                ["candidate_index"]
            )
        candidate = suggestions.replacements[request.candidate_index]
    else:
        raise ReplacementValidationError("Send replacement or candidate_index", ["replacement"])

    result = await mutations.apply(db, request.user_id, request.day, request.meal_type, candidate)
    logger.info(f"Confirmed replacement for user {request.user_id}: {result.day} {result.meal_type}")
    return result


@router.post("/modify", response_model=MealModification)
async def modify_meal(
    request: ModifyMealRequest,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine),
    mutations: PlanMutationService = Depends(get_mutations)
):
    """Suggest a modified version of a planned meal ("make it vegan"). Nothing is written."""
    day, meal_type = await _resolve_slot(db, request.user_id, request.request, request.day, request.meal_type)
    current = await mutations.get_current_meal(db, request.user_id, day, meal_type)
    preferences = await _preferences(db, request.user_id)
    return await engine.modify_meal(current, request.request, preferences)


@router.get("/current/{user_id}", response_model=CurrentMealPlanResponse)
async def current_meal_plan(
    user_id: str,
    db: Session = Depends(get_db)
):
    """The user's latest plan and today's entry from it."""
    plan = await run_sync(crud_meal_plans.meal_plan.get_latest_or_raise, db, user_id)
    weekly = WeeklyPlan.model_validate(plan)

    index = find_day_index(plan.week, today_name())
    today: Optional[DayPlan] = weekly.week[index] if index is not None else None
    return CurrentMealPlanResponse(plan=weekly, today=today)


@router.post("/plans", response_model=WeeklyPlan, status_code=201)
async def save_meal_plan(
    request: SaveMealPlanRequest,
    db: Session = Depends(get_db)
):
    """Save a weekly plan; it becomes the user's current plan."""
    plan = await run_sync(
        crud_meal_plans.meal_plan.create,
        db,
        obj_in=crud_meal_plans.MealPlanCreate(
            user_id=request.user_id,
            week=[day.model_dump() for day in request.week],
        ),
    )
    logger.info(f"Saved meal plan {plan.id} for user {request.user_id} ({len(request.week)} day(s))")
    return WeeklyPlan.model_validate(plan)


@router.get("/plans/latest/{user_id}", response_model=WeeklyPlan)
async def latest_meal_plan(
    user_id: str,
    db: Session = Depends(get_db)
):
    plan = await run_sync(crud_meal_plans.meal_plan.get_latest_or_raise, db, user_id)
    return WeeklyPlan.model_validate(plan)


@router.post("/ai-update", response_model=AIUpdateResponse)
async def ai_update_meal(
    request: AIUpdateRequest,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine),
    mutations: PlanMutationService = Depends(get_mutations)
):
    """
    AI-assisted change to one planned meal.

    Without **auto_confirm** this only returns suggestions. With it, the
    suggestion at **selected_replacement_index** is written to the plan
    (the first one if the index is past the end).
    """
    preferences = await _preferences(db, request.user_id)

    if request.auto_confirm:
        applied = await engine.replace_and_apply(
            db,
            mutations,
            request.user_id,
            request.day,
            request.meal_type,
            preferences,
            request.instruction or "AI-assisted replacement",
            request.selected_replacement_index,
        )
        mutation = applied.mutation
        return AIUpdateResponse(
            message=f"Replaced {mutation.meal_type} for {mutation.day.capitalize()}",
            applied=applied,
        )

    current = await mutations.get_current_meal(db, request.user_id, request.day, request.meal_type)
    suggestions = await engine.suggest(
        current,
        preferences,
        request.instruction or "Suggest replacements based on user preferences",
    )
    return AIUpdateResponse(message="Replacement suggestions generated", suggestions=suggestions)


@router.get("/suggestions/{user_id}", response_model=ContextualSuggestions)
async def contextual_suggestions(
    user_id: str,
    mood: Optional[str] = None,
    energy_level: Optional[str] = None,
    available_time: Optional[str] = None,
    weather: Optional[str] = None,
    stress_level: Optional[str] = None,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine)
):
    """Meal ideas for how the user feels and how much time they have right now."""
    preferences = await _preferences(db, user_id)
    plan = await run_sync(crud_meal_plans.meal_plan.get_latest, db, user_id)

    recent_meals = []
    for entry in (plan.week if plan else [])[-LimitsConstants.RECENT_MEAL_DAYS:]:
        for meal_type in ("breakfast", "lunch", "dinner"):
            dish = (entry.get(meal_type) or {}).get("dish")
            if dish:
                recent_meals.append(dish)

    situation = MealSituation(
        current_time=datetime.now().strftime("%H:%M"),
        mood=mood or "neutral",
        energy_level=energy_level or "moderate",
        available_time=available_time or "30 minutes",
        weather=weather or "mild",
        stress_level=stress_level or "low",
        budget=preferences.budget,
        recent_meals=recent_meals,
        health_goals=preferences.health_goals,
        restrictions=preferences.allergies,
    )
    return await engine.contextual_suggestions(situation)


@router.post("/substitutions", response_model=IngredientSubstitutions)
async def ingredient_substitutions(
    request: SubstitutionRequest,
    db: Session = Depends(get_db),
    engine: ReplacementSuggestionEngine = Depends(get_engine),
    mutations: PlanMutationService = Depends(get_mutations)
):
    """
    Swaps for ingredients the user doesn't like.

    The dish is sent as **current_recipe** or looked up in the plan by
    **day** and **meal_type**.
    """
    if request.current_recipe is not None:
        recipe = request.current_recipe
    elif request.day and request.meal_type:
        recipe = await mutations.get_current_meal(db, request.user_id, request.day, request.meal_type)
    else:
        raise ReplacementValidationError(
            "Send current_recipe or both day and meal_type", ["current_recipe"]
        )

    preferences = await _preferences(db, request.user_id)
    goals = {
        "healthGoals": preferences.health_goals,
        "goals": preferences.goals,
        "activityLevel": preferences.activity_level,
        "allergies": preferences.allergies,
        "foodsToAvoid": preferences.foods_to_avoid,
    }
    return await engine.suggest_substitutions(request.disliked_ingredients, recipe, goals)


@router.post("/feedback", response_model=MealFeedbackResult)
async def meal_feedback(
    request: MealFeedbackRequest,
    db: Session = Depends(get_db)
):
    """Rate a replacement; low ratings keep that meal out of future suggestions."""
    return await record_meal_feedback(db, request)
