"""
Writes replacement meals into a user's weekly plan.

Every AI or caller supplied candidate passes through normalize_candidate
once, then becomes a fully populated MealSlot via candidate_to_slot before
anything touches the database.
"""
import asyncio
import math
import re
import weakref
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from nutriplan.core.constants import MenuConstants, NutritionConstants
from nutriplan.core.exceptions import DataIntegrityWarning, DayNotFoundError, ReplacementValidationError
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_meal_plans
from nutriplan.db.crud_meal_plans import find_day_index
from nutriplan.db.schema import Macros, MealSlot, MutationResult, ReplacementCandidate
from nutriplan.db.session import run_sync

logger = get_logger("services.plan_mutation")

CandidateInput = Union[ReplacementCandidate, Mapping[str, Any]]

_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")

ANIMAL_KEYWORDS = ["meat", "chicken", "fish", "salmon", "tuna", "beef", "pork", "lamb", "turkey", "shrimp", "prawn"]
ANIMAL_PRODUCT_KEYWORDS = ["egg", "dairy", "cheese", "paneer", "milk", "yogurt", "yoghurt", "butter", "ghee", "honey"]


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    """First value that is present and not empty, following key order."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "" and value != []:
            return value
    return None


def to_number(value: Any) -> Optional[float]:
    """Parse 400, "400", "400 kcal" or "25g"; negatives and junk count as missing."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_PATTERN.search(str(value))
        if not match:
            return None
        number = float(match.group())
    if math.isnan(number) or number < 0:
        return None
    return number


def _text_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    items = []
    for item in value:
        if isinstance(item, Mapping):
            item = item.get("name") or item.get("item") or ""
        if str(item).strip():
            items.append(str(item).strip())
    return items


def _joined(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value if v)
    return str(value)


def _macro(macros: Mapping[str, Any], raw: Mapping[str, Any], key: str, *flat_keys: str) -> Optional[float]:
    nested = to_number(macros.get(key))
    if nested is not None:
        return nested
    for flat_key in flat_keys:
        value = to_number(raw.get(flat_key))
        if value is not None:
            return value
    return None


def normalize_candidate(raw: CandidateInput) -> ReplacementCandidate:
    """
    Convert a loosely shaped replacement into a ReplacementCandidate.

    Field precedence:
        name:         name > title > dish
        protein:      macros.protein > protein
        carbs:        macros.carbs > carbs
        fat:          macros.fat > fat > fats
        instructions: instructions > recipe
        prep_time:    prep_time > prepTime > cookTime
        description:  description > summary
        why:          why_good_replacement > whyGoodReplacement > rationale

    Raises:
        ReplacementValidationError: If the input is not an object or has no name
    """
    if isinstance(raw, ReplacementCandidate):
        return raw
    if not isinstance(raw, Mapping):
        raise ReplacementValidationError("Replacement must be an object", ["replacement"])

    name = _first(raw, "name", "title", "dish")
    if not isinstance(name, str) or not name.strip():
        raise ReplacementValidationError("Replacement is missing a name", ["name"])

    macros = raw.get("macros") if isinstance(raw.get("macros"), Mapping) else {}

    prep_time = _first(raw, "prep_time", "prepTime", "cookTime")

    return ReplacementCandidate(
        name=name.strip(),
        description=str(_first(raw, "description", "summary") or ""),
        calories=to_number(raw.get("calories")),
        macros=Macros(
            protein=_macro(macros, raw, "protein", "protein"),
            carbs=_macro(macros, raw, "carbs", "carbs"),
            fat=_macro(macros, raw, "fat", "fat", "fats"),
        ),
        prep_time=str(prep_time) if prep_time is not None else None,
        difficulty=_joined(raw.get("difficulty")),
        ingredients=_text_list(raw.get("ingredients")),
        instructions=_joined(_first(raw, "instructions", "recipe")),
        why_good_replacement=str(_first(raw, "why_good_replacement", "whyGoodReplacement", "rationale") or ""),
        health_benefits=_text_list(_first(raw, "health_benefits", "healthBenefits")),
        customizations=_joined(raw.get("customizations")),
    )


def _round(value: float) -> float:
    return float(math.floor(value + 0.5))


def estimate_nutrition(
    calories: Optional[float],
    protein: Optional[float],
    carbs: Optional[float],
    fat: Optional[float]
) -> Tuple[Dict[str, float], List[str]]:
    """
    Fill in missing calories and macros.

    Missing macros are split 20/50/30 (protein/carbs/fat) from calories using
    4/4/9 kcal per gram. Missing calories are computed from the macros that
    are present, or fall back to the baseline when there are none.

    Returns:
        ({"calories", "protein", "carbs", "fats"}, notes about estimated fields)
    """
    notes: List[str] = []
    nc = NutritionConstants

    if calories is None:
        if any(v is not None for v in (protein, carbs, fat)):
            calories = _round(
                (protein or 0) * nc.KCAL_PER_GRAM_PROTEIN
                + (carbs or 0) * nc.KCAL_PER_GRAM_CARBS
                + (fat or 0) * nc.KCAL_PER_GRAM_FAT
            )
            notes.append("calories estimated from macros")
            protein, carbs, fat = protein or 0.0, carbs or 0.0, fat or 0.0
        else:
            calories = float(nc.BASELINE_CALORIES)
            notes.append(f"calories defaulted to {nc.BASELINE_CALORIES}")

    if protein is None:
        protein = _round(calories * nc.PROTEIN_RATIO / nc.KCAL_PER_GRAM_PROTEIN)
        notes.append("protein estimated from calories")
    if carbs is None:
        carbs = _round(calories * nc.CARBS_RATIO / nc.KCAL_PER_GRAM_CARBS)
        notes.append("carbs estimated from calories")
    if fat is None:
        fat = _round(calories * nc.FAT_RATIO / nc.KCAL_PER_GRAM_FAT)
        notes.append("fat estimated from calories")

    return {"calories": float(calories), "protein": float(protein), "carbs": float(carbs), "fats": float(fat)}, notes


def build_recipe_text(candidate: ReplacementCandidate) -> str:
    """instructions, else ingredients + description, else name + description + prep time."""
    if candidate.instructions and candidate.instructions.strip():
        return candidate.instructions.strip()
    if candidate.ingredients:
        description = candidate.description or "Cook according to preference."
        return f"Ingredients: {', '.join(candidate.ingredients)}. {description}"
    description = candidate.description or MenuConstants.PLACEHOLDER_RECIPE
    return f"{candidate.name} - {description}. Prep time: {candidate.prep_time or '30 minutes'}"


def parse_minutes(prep_time: Optional[str]) -> Optional[int]:
    """'15 minutes' -> 15, '1 hour 10 min' -> 70, '1.5 hours' -> 90."""
    if not prep_time:
        return None
    text = prep_time.lower()
    hours = re.search(r"(\d+(?:\.\d+)?)\s*(h|hr|hrs|hour|hours)\b", text)
    minutes = re.search(r"(\d+)\s*(m|min|mins|minute|minutes)\b", text)
    if hours or minutes:
        total = float(hours.group(1)) * 60 if hours else 0
        total += int(minutes.group(1)) if minutes else 0
        return int(total)
    bare = re.search(r"\d+", text)
    return int(bare.group()) if bare else None


def infer_tags(candidate: ReplacementCandidate, meal_type: str, nutrition: Dict[str, float]) -> List[str]:
    """Meal type first, then difficulty and dietary tags; no duplicates."""
    tags = [meal_type, (candidate.difficulty or "easy").strip().lower() or "easy"]

    text = " ".join([
        candidate.name,
        candidate.description,
        " ".join(candidate.ingredients),
    ]).lower()

    has_meat = any(word in text for word in ANIMAL_KEYWORDS)
    has_animal_product = any(word in text for word in ANIMAL_PRODUCT_KEYWORDS)
    if "vegan" in text or not (has_meat or has_animal_product):
        tags.append("vegan")
    elif "vegetarian" in text or not has_meat:
        tags.append("vegetarian")

    calories = nutrition["calories"]
    protein_share = nutrition["protein"] * NutritionConstants.KCAL_PER_GRAM_PROTEIN / calories if calories else 0
    if "protein" in text or protein_share >= 0.3:
        tags.append("high-protein")

    if "low-carb" in text or "low carb" in text or "keto" in text:
        tags.append("low-carb")

    if "healthy" in text or calories < NutritionConstants.HEALTHY_CALORIE_LIMIT:
        tags.append("healthy")

    minutes = parse_minutes(candidate.prep_time)
    if "quick" in text or (minutes is not None and minutes <= NutritionConstants.QUICK_PREP_MINUTES):
        tags.append("quick")

    return list(dict.fromkeys(tags))


def candidate_to_slot(candidate: ReplacementCandidate, meal_type: str) -> Tuple[MealSlot, List[str]]:
    """Build the fully populated slot a candidate is stored as."""
    nutrition, notes = estimate_nutrition(
        candidate.calories,
        candidate.macros.protein,
        candidate.macros.carbs,
        candidate.macros.fat,
    )
    slot = MealSlot(
        dish=candidate.name or MenuConstants.PLACEHOLDER_DISH,
        calories=nutrition["calories"],
        protein=nutrition["protein"],
        fats=nutrition["fats"],
        carbs=nutrition["carbs"],
        recipe=build_recipe_text(candidate),
        tags=infer_tags(candidate, meal_type, nutrition) or [MenuConstants.PLACEHOLDER_TAG],
    )
    return slot, notes


def coerce_slot(raw: Optional[Mapping[str, Any]]) -> MealSlot:
    """Read a stored slot, filling any gaps with defaults."""
    raw = raw or {}
    tags = raw.get("tags")
    return MealSlot(
        dish=str(raw.get("dish") or MenuConstants.PLACEHOLDER_DISH),
        calories=to_number(raw.get("calories")) or 0,
        protein=to_number(raw.get("protein")) or 0,
        fats=to_number(raw.get("fats")) or 0,
        carbs=to_number(raw.get("carbs")) or 0,
        recipe=str(raw.get("recipe") or MenuConstants.PLACEHOLDER_RECIPE),
        tags=[str(t) for t in tags] if tags else [MenuConstants.PLACEHOLDER_TAG],
    )


def _validate_meal_type(meal_type: str) -> str:
    normalized = (meal_type or "").strip().lower()
    if not MenuConstants.is_valid_meal(normalized):
        raise ReplacementValidationError(f"Unknown meal type: {meal_type}", ["meal_type"])
    return normalized


def load_slot(db: Session, user_id: str, day: str, meal_type: str) -> MealSlot:
    """Current meal at (day, meal_type) of the user's latest plan."""
    meal_type = _validate_meal_type(meal_type)
    plan = crud_meal_plans.meal_plan.get_latest_or_raise(db, user_id)
    day_index = find_day_index(plan.week, day)
    if day_index is None:
        raise DayNotFoundError(day)
    return coerce_slot(plan.week[day_index].get(meal_type))


class PlanMutationService:
    """
    Applies replacements to weekly plans, one writer per plan at a time.

    A write rewrites the whole week document, so every slot of a user's plan
    shares one lock. Locks are held weakly and disappear once no writer or
    waiter references them.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def get_current_meal(self, db: Session, user_id: str, day: str, meal_type: str) -> MealSlot:
        return await run_sync(load_slot, db, user_id, day, meal_type)

    async def apply(
        self,
        db: Session,
        user_id: str,
        day: str,
        meal_type: str,
        candidate: CandidateInput
    ) -> MutationResult:
        """
        Replace the meal at (day, meal_type) in the user's latest plan.

        Raises:
            ReplacementValidationError: Bad candidate or meal type (nothing written)
            MealPlanNotFoundError: The user has no plan
            DayNotFoundError: The plan has no entry for the day
        """
        meal_type = _validate_meal_type(meal_type)
        normalized = normalize_candidate(candidate)
        slot, notes = candidate_to_slot(normalized, meal_type)

        async with self._lock_for(user_id):
            return await run_sync(self._apply_sync, db, user_id, day, meal_type, slot, notes)

    def _apply_sync(
        self,
        db: Session,
        user_id: str,
        day: str,
        meal_type: str,
        slot: MealSlot,
        notes: List[str]
    ) -> MutationResult:
        plan = crud_meal_plans.meal_plan.get_latest_or_raise(db, user_id)
        day_index = find_day_index(plan.week, day)
        if day_index is None:
            raise DayNotFoundError(day)

        day_name = str(plan.week[day_index].get("day", day)).lower()
        original = coerce_slot(plan.week[day_index].get(meal_type))
        intended = slot.model_dump()

        logger.info(f"Replacing {meal_type} for {day_name} (user {user_id}): {original.dish} -> {slot.dish}")
        crud_meal_plans.meal_plan.write_slot(db, plan, day_index, meal_type, intended)

        warnings = list(notes)
        stored = crud_meal_plans.meal_plan.read_slot(db, plan.id, day_index, meal_type)
        if stored != intended:
            warning = DataIntegrityWarning(
                f"Saved {meal_type} for {day_name} does not match what was written"
            )
            logger.warning(f"{type(warning).__name__}: {warning} (stored={stored!r})")
            warnings.append(str(warning))
        else:
            logger.info(f"Verified {meal_type} for {day_name}: {slot.dish} ({slot.calories:.0f} kcal)")

        return MutationResult(
            updated_meal=slot,
            original_meal=original,
            day=day_name,
            meal_type=meal_type,
            verified_meal=coerce_slot(stored) if stored else slot,
            warnings=warnings,
        )
