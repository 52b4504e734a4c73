"""
AI-backed meal replacement and modification suggestions.
"""
import json
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from nutriplan.core.constants import LimitsConstants
from nutriplan.core.exceptions import ReplacementValidationError, UnparseableAIResponseError
from nutriplan.core.llm_client import LLMClient
from nutriplan.core.logging import get_logger
from nutriplan.db.schema import (
    AppliedReplacement,
    ContextualMeal,
    ContextualSuggestions,
    IngredientSubstitution,
    IngredientSubstitutions,
    MealModification,
    MealSituation,
    MealSlot,
    NutritionalComparison,
    PreferenceContext,
    ReplacementCandidate,
    ReplacementSuggestions,
    SmartSubstitution,
)
from nutriplan.services.chat.intent import mentioned_food_item, normalize_message
from nutriplan.services.diversity import diversify
from nutriplan.services.plan_mutation import PlanMutationService, normalize_candidate
from nutriplan.services.suggestion_cache import SuggestionCache
from nutriplan.utils.json_parser import parse_ai_json
from nutriplan.utils.prompt_loader import PromptLoader, get_prompt_loader

logger = get_logger("services.meal_replacement")

MealInput = Union[MealSlot, Mapping[str, Any], None]
ItemModel = TypeVar("ItemModel", bound=BaseModel)

FOOD_PHRASE_PATTERNS = [
    re.compile(r"recipe for (.+?)(?:[.?!]|$)"),
    re.compile(r"how to (?:make|cook) (.+?)(?:[.?!]|$)"),
    re.compile(r"\bcook (.+?)(?:[.?!]|$)"),
    re.compile(r"\bprepare (.+?)(?:[.?!]|$)"),
    re.compile(r"\bmake (.+?)(?:[.?!]|$)"),
    re.compile(r"(.+?)\s+recipe\b"),
]


def extract_food_item(message: str) -> Optional[str]:
    """
    Food a recipe request is about: a known dish or ingredient first,
    then phrases like "recipe for X" or "how to make X".
    """
    text = normalize_message(message)
    food = mentioned_food_item(text)
    if food:
        return food

    for pattern in FOOD_PHRASE_PATTERNS:
        match = pattern.search(text)
        if match and len(match.group(1).strip()) > 2:
            return match.group(1).strip()
    return None


def _meal_dict(meal: MealInput) -> Dict[str, Any]:
    if meal is None:
        return {}
    if isinstance(meal, MealSlot):
        return meal.model_dump()
    return dict(meal)


def meal_fingerprint(meal: MealInput) -> str:
    data = _meal_dict(meal)
    fingerprint = data.get("dish") or data.get("name") or json.dumps(data, sort_keys=True, default=str)
    return str(fingerprint)[:LimitsConstants.CACHE_KEY_FRAGMENT_LENGTH]


def suggestion_cache_key(user_id: str, meal: MealInput, reason: str) -> str:
    reason_fragment = (reason or "")[:LimitsConstants.CACHE_KEY_FRAGMENT_LENGTH]
    return f"suggestions:{user_id}:{meal_fingerprint(meal)}:{reason_fragment}"


def _valid_items(raw: Any, model: Type[ItemModel]) -> List[ItemModel]:
    """Validate each item of an AI-supplied list, skipping malformed ones."""
    items = []
    if not isinstance(raw, list):
        return items
    for item in raw:
        try:
            items.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed {model.__name__}: {e}")
    return items


class ReplacementSuggestionEngine:
    """Builds prompts, calls the LLM and turns its output into typed suggestions."""

    def __init__(
        self,
        llm_client: LLMClient,
        cache: SuggestionCache,
        prompt_loader: Optional[PromptLoader] = None
    ):
        self.llm = llm_client
        self.cache = cache
        self.prompt_loader = prompt_loader or get_prompt_loader()

    async def suggest(
        self,
        current_meal: MealInput,
        context: PreferenceContext,
        reason: str
    ) -> ReplacementSuggestions:
        """
        Up to three diverse replacements for a meal.

        Raises:
            AIUnavailableError: The LLM could not be reached on any model
            UnparseableAIResponseError: The LLM answered with unusable output
        """
        cache_key = suggestion_cache_key(context.user_id, current_meal, reason)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Suggestion cache HIT for {cache_key[:80]}")
            return ReplacementSuggestions.model_validate(cached)
        logger.info(f"Suggestion cache MISS for {cache_key[:80]}")

        started = time.monotonic()
        system_prompt, user_template = self.prompt_loader.get_system_and_template("meal_replacement")
        prompt = self.prompt_loader.format_prompt(
            user_template,
            current_meal=json.dumps(_meal_dict(current_meal), indent=2, default=str),
            reason=reason or "Not specified",
            **context.as_prompt_fields(),
        )

        response = await self.llm.generate_with_fallback(prompt, system=system_prompt)
        parsed = parse_ai_json(response)

        raw_replacements = parsed.get("replacements")
        if not isinstance(raw_replacements, list):
            raise UnparseableAIResponseError(
                "AI response has no replacements list",
                raw_prefix=response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
            )

        candidates = self._valid_candidates(raw_replacements)
        if not candidates:
            raise UnparseableAIResponseError(
                "AI response contained no usable replacements",
                raw_prefix=response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
            )

        preferred = context.cuisine_preferences if context.cuisine_preferences != "Any" else None
        chosen = diversify([c.model_dump() for c in candidates], preferred_cuisine=preferred)

        result = ReplacementSuggestions(
            replacements=[ReplacementCandidate.model_validate(c) for c in chosen],
            smart_substitutions=self._substitutions(parsed.get("smartSubstitutions") or parsed.get("smart_substitutions")),
            personalized_tips=[str(t) for t in (parsed.get("personalizedTips") or parsed.get("personalized_tips") or [])],
        )

        await self.cache.set(cache_key, result.model_dump(mode="json"))
        logger.info(
            f"Suggested {len(result.replacements)} replacement(s) from {len(raw_replacements)} "
            f"in {time.monotonic() - started:.2f}s"
        )
        return result

    def _valid_candidates(self, raw_replacements: List[Any]) -> List[ReplacementCandidate]:
        candidates = []
        for raw in raw_replacements:
            try:
                candidates.append(normalize_candidate(raw))
            except ReplacementValidationError as e:
                logger.warning(f"Dropping AI replacement without required fields {e.fields}: {str(raw)[:200]}")
        return candidates

    def _substitutions(self, raw: Any) -> List[SmartSubstitution]:
        return _valid_items(raw, SmartSubstitution)

    async def modify_meal(
        self,
        current_meal: MealInput,
        request: str,
        context: PreferenceContext
    ) -> MealModification:
        """
        Suggest a modified version of a meal ("make it vegan", "add more protein").
        Nothing is written to the plan.
        """
        system_prompt, user_template = self.prompt_loader.get_system_and_template("meal_modification")
        prompt = self.prompt_loader.format_prompt(
            user_template,
            current_meal=json.dumps(_meal_dict(current_meal), indent=2, default=str),
            request=request,
            preferences=json.dumps(context.model_dump(), indent=2),
        )

        response = await self.llm.generate_with_fallback(prompt, system=system_prompt)
        parsed = parse_ai_json(response)

        raw_meal = parsed.get("modifiedMeal") or parsed.get("modified_meal")
        try:
            modified = normalize_candidate(raw_meal)
        except ReplacementValidationError as e:
            raise UnparseableAIResponseError(
                f"AI modification response is missing the modified meal: {e}",
                raw_prefix=response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
            ) from e

        try:
            comparison = NutritionalComparison.model_validate(
                parsed.get("nutritionalComparison") or parsed.get("nutritional_comparison") or {}
            )
        except ValidationError as e:
            logger.warning(f"Ignoring malformed nutritional comparison: {e}")
            comparison = NutritionalComparison()

        return MealModification(
            modified_meal=modified,
            nutritional_comparison=comparison,
            explanation=str(parsed.get("explanation") or ""),
            alternative_options=[str(o) for o in (parsed.get("alternativeOptions") or parsed.get("alternative_options") or [])],
        )

    async def generate_recipe(self, food_item: str) -> str:
        """Markdown recipe for a dish."""
        system_prompt, user_template = self.prompt_loader.get_system_and_template("recipe_generation")
        prompt = self.prompt_loader.format_prompt(
            user_template,
            food_item=food_item,
            title=food_item.upper(),
        )
        response = await self.llm.generate_with_fallback(prompt, system=system_prompt, temperature=0.7)
        logger.info(f"Generated recipe for '{food_item}' ({len(response)} chars)")
        return response.strip()

    async def suggest_substitutions(
        self,
        disliked_ingredients: Sequence[str],
        current_recipe: MealInput,
        nutritional_goals: Mapping[str, Any]
    ) -> IngredientSubstitutions:
        """
        Substitutes for ingredients the user doesn't like, keeping the
        dish's nutrition close to the original.

        Raises:
            AIUnavailableError: The LLM could not be reached on any model
            UnparseableAIResponseError: No substitution in the answer could be used
        """
        system_prompt, user_template = self.prompt_loader.get_system_and_template("ingredient_substitution")
        prompt = self.prompt_loader.format_prompt(
            user_template,
            disliked_ingredients=", ".join(disliked_ingredients),
            current_recipe=json.dumps(_meal_dict(current_recipe), indent=2, default=str),
            nutritional_goals=json.dumps(dict(nutritional_goals), indent=2, default=str),
        )

        response = await self.llm.generate_with_fallback(prompt, system=system_prompt)
        parsed = parse_ai_json(response)

        substitutions = _valid_items(parsed.get("substitutions"), IngredientSubstitution)
        if not substitutions:
            raise UnparseableAIResponseError(
                "AI response contained no usable substitutions",
                raw_prefix=response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
            )

        logger.info(f"Suggested substitutions for {len(substitutions)} ingredient(s)")
        return IngredientSubstitutions(
            substitutions=substitutions,
            recipe_adjustments=str(parsed.get("recipeAdjustments") or ""),
            nutritional_summary=str(parsed.get("nutritionalSummary") or ""),
        )

    async def contextual_suggestions(self, situation: MealSituation) -> ContextualSuggestions:
        """Meal ideas for the user's mood, energy, time and weather right now."""
        count = LimitsConstants.CONTEXTUAL_SUGGESTION_COUNT
        system_prompt, user_template = self.prompt_loader.get_system_and_template("contextual_suggestions")
        prompt = self.prompt_loader.format_prompt(
            user_template,
            current_time=situation.current_time,
            mood=situation.mood,
            energy_level=situation.energy_level,
            available_time=situation.available_time,
            budget=situation.budget,
            weather=situation.weather,
            recent_meals=", ".join(situation.recent_meals) or "None recorded",
            health_goals=situation.health_goals,
            restrictions=", ".join(situation.restrictions) or "None",
            equipment=situation.equipment,
            stress_level=situation.stress_level,
            count=count,
        )

        response = await self.llm.generate_with_fallback(prompt, system=system_prompt, temperature=0.7)
        parsed = parse_ai_json(response)

        meals = _valid_items(parsed.get("suggestions"), ContextualMeal)
        if not meals:
            raise UnparseableAIResponseError(
                "AI response contained no usable meal suggestions",
                raw_prefix=response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
            )

        return ContextualSuggestions(
            suggestions=meals[:count],
            avoid_suggestions=[str(s) for s in (parsed.get("avoidSuggestions") or [])],
            mood_food_tips=str(parsed.get("moodFoodTips") or ""),
        )

    async def replace_and_apply(
        self,
        db: Session,
        mutations: PlanMutationService,
        user_id: str,
        day: str,
        meal_type: str,
        context: PreferenceContext,
        reason: str,
        selected_index: int = 0
    ) -> AppliedReplacement:
        """
        Suggest replacements for a planned meal and write one of them in a
        single step. An index past the end of the list falls back to the
        first suggestion and says so in the mutation warnings.
        """
        current = await mutations.get_current_meal(db, user_id, day, meal_type)
        suggestions = await self.suggest(current, context, reason)

        index = selected_index
        if index >= len(suggestions.replacements):
            logger.warning(
                f"Option {selected_index + 1} not available ({len(suggestions.replacements)} suggestion(s)), "
                f"applying option 1"
            )
            index = 0

        selected = suggestions.replacements[index]
        mutation = await mutations.apply(db, user_id, day, meal_type, selected)
        if index != selected_index:
            mutation.warnings.append(f"Option {selected_index + 1} was not available; applied option 1 instead")

        return AppliedReplacement(mutation=mutation, selected_replacement=selected, suggestions=suggestions)
