"""
Pydantic schemas for API request/response models.
These define the structure of data flowing through the API and between services.
"""
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

from nutriplan.core.constants import MenuConstants


class MealSlot(BaseModel):
    """A fully populated meal in a plan slot."""
    dish: str = Field(..., min_length=1)
    calories: float = Field(0, ge=0)
    protein: float = Field(0, ge=0)
    fats: float = Field(0, ge=0)
    carbs: float = Field(0, ge=0)
    recipe: str = MenuConstants.PLACEHOLDER_RECIPE
    tags: List[str] = Field(default_factory=lambda: [MenuConstants.PLACEHOLDER_TAG])

    model_config = ConfigDict(from_attributes=True)


class DayPlan(BaseModel):
    """One day of a weekly plan."""
    day: str
    breakfast: MealSlot
    lunch: MealSlot
    dinner: MealSlot

    @field_validator("day")
    @classmethod
    def normalize_day(cls, v: str) -> str:
        day = v.strip().lower()
        if not MenuConstants.is_valid_day(day):
            raise ValueError(f"Invalid day of week: {v}")
        return day


class WeeklyPlan(BaseModel):
    """A user's weekly plan."""
    id: int
    user_id: str
    week: List[DayPlan]
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Macros(BaseModel):
    """Macro nutrients in grams."""
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None


class ReplacementCandidate(BaseModel):
    """An AI-proposed meal, before it is converted into a MealSlot."""
    name: str
    description: str = ""
    calories: Optional[float] = None
    macros: Macros = Field(default_factory=Macros)
    prep_time: Optional[str] = Field(None, alias="prepTime")
    difficulty: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    instructions: Optional[str] = None
    why_good_replacement: str = Field("", alias="whyGoodReplacement")
    health_benefits: List[str] = Field(default_factory=list, alias="healthBenefits")
    customizations: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SmartSubstitution(BaseModel):
    dont_like: str = Field("", alias="dontLike")
    replace_with: List[str] = Field(default_factory=list, alias="replaceWith")
    nutritional_impact: str = Field("", alias="nutritionalImpact")

    model_config = ConfigDict(populate_by_name=True)


class ReplacementSuggestions(BaseModel):
    """Diversified replacement candidates plus supporting advice."""
    replacements: List[ReplacementCandidate] = Field(default_factory=list, max_length=3)
    smart_substitutions: List[SmartSubstitution] = Field(default_factory=list, alias="smartSubstitutions")
    personalized_tips: List[str] = Field(default_factory=list, alias="personalizedTips")

    model_config = ConfigDict(populate_by_name=True)


class NutritionalComparison(BaseModel):
    calorie_change: float = Field(0, alias="calorieChange")
    protein_change: float = Field(0, alias="proteinChange")
    carb_change: float = Field(0, alias="carbChange")
    fat_change: float = Field(0, alias="fatChange")
    health_score_change: float = Field(0, alias="healthScoreChange")

    model_config = ConfigDict(populate_by_name=True)


class MealModification(BaseModel):
    """AI suggestion for changing an existing meal without replacing it."""
    modified_meal: ReplacementCandidate = Field(..., alias="modifiedMeal")
    nutritional_comparison: NutritionalComparison = Field(
        default_factory=NutritionalComparison, alias="nutritionalComparison"
    )
    explanation: str = ""
    alternative_options: List[str] = Field(default_factory=list, alias="alternativeOptions")

    model_config = ConfigDict(populate_by_name=True)


class DirectSubstitute(BaseModel):
    substitute: str
    ratio: str = "1:1"
    nutrition_impact: str = Field("", alias="nutritionImpact")
    taste_profile: str = Field("", alias="tasteProfile")
    availability: str = ""

    model_config = ConfigDict(populate_by_name=True)


class CreativeAlternative(BaseModel):
    substitute: str
    how_to_use: str = Field("", alias="howToUse")
    benefits: str = ""
    considerations: str = ""

    model_config = ConfigDict(populate_by_name=True)


class IngredientSubstitution(BaseModel):
    """Ways to cook a dish without one disliked ingredient."""
    original_ingredient: str = Field(..., alias="originalIngredient")
    direct_substitutes: List[DirectSubstitute] = Field(default_factory=list, alias="directSubstitutes")
    creative_alternatives: List[CreativeAlternative] = Field(default_factory=list, alias="creativeAlternatives")

    model_config = ConfigDict(populate_by_name=True)


class IngredientSubstitutions(BaseModel):
    substitutions: List[IngredientSubstitution] = Field(default_factory=list)
    recipe_adjustments: str = Field("", alias="recipeAdjustments")
    nutritional_summary: str = Field("", alias="nutritionalSummary")

    model_config = ConfigDict(populate_by_name=True)


class MealSituation(BaseModel):
    """What the user is dealing with right now, for situational meal ideas."""
    current_time: str
    mood: str = "neutral"
    energy_level: str = "moderate"
    available_time: str = "30 minutes"
    budget: str = "moderate"
    weather: str = "mild"
    stress_level: str = "low"
    recent_meals: List[str] = Field(default_factory=list)
    health_goals: str = "General wellness"
    restrictions: List[str] = Field(default_factory=list)
    equipment: str = "Basic kitchen"


class ContextualMeal(BaseModel):
    meal_name: str = Field(..., alias="mealName")
    context_reason: str = Field("", alias="contextReason")
    mood_boost: str = Field("", alias="moodBoost")
    quick_version: str = Field("", alias="quickVersion")
    comfort_level: str = Field("", alias="comfortLevel")
    ingredients: List[str] = Field(default_factory=list)
    nutritional_highlights: List[str] = Field(default_factory=list, alias="nutritionalHighlights")
    preparation_tips: str = Field("", alias="preparationTips")

    model_config = ConfigDict(populate_by_name=True)


class ContextualSuggestions(BaseModel):
    suggestions: List[ContextualMeal] = Field(default_factory=list)
    avoid_suggestions: List[str] = Field(default_factory=list, alias="avoidSuggestions")
    mood_food_tips: str = Field("", alias="moodFoodTips")

    model_config = ConfigDict(populate_by_name=True)


class PendingReplacement(BaseModel):
    """Suggestions shown to the user and not yet applied."""
    target_meal: MealSlot
    meal_type: str
    day_of_week: str
    candidates: List[ReplacementCandidate]


class MealTarget(BaseModel):
    day: str
    meal_type: str


class IntentKind(str, Enum):
    REPLACEMENT = "meal_replacement"
    DIRECT_REPLACEMENT = "direct_replacement"
    CONFIRMATION = "confirmation"
    RECIPE = "recipe_request"
    MODIFICATION = "modification"
    NONE = "none"


class IntentResult(BaseModel):
    kind: IntentKind
    day: Optional[str] = None
    meal_type: Optional[str] = None
    option_index: Optional[int] = None
    # True when the message asks for the change to be made right away
    is_direct: bool = False
    is_plan_query: bool = False


class MutationResult(BaseModel):
    """Before/after snapshots of a slot write."""
    updated_meal: MealSlot
    original_meal: MealSlot
    day: str
    meal_type: str
    verified_meal: MealSlot
    warnings: List[str] = Field(default_factory=list)


class AppliedReplacement(BaseModel):
    """A suggestion round whose chosen candidate was written straight into the plan."""
    mutation: MutationResult
    selected_replacement: ReplacementCandidate
    suggestions: ReplacementSuggestions


class PreferenceContext(BaseModel):
    """Normalized, default-filled view of a user's dietary profile."""
    user_id: str = "anonymous"
    health_goals: str = "General wellness"
    restrictions: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)

    activity_level: str = "Moderate"
    meat_preference: str = "Any"
    goals: str = "General wellness"
    craving_type: str = "None"
    cravings_frequency: str = "Rarely"
    digestive_upset: str = "Never"
    fatigue_time: str = "Not specified"
    medical_conditions: str = "None"
    foods_to_avoid: str = "None"
    other_preferences: str = "None"

    gender: str = "Not specified"
    current_weight: str = "Not specified"
    goal_weight: str = "Not specified"
    height: str = "Not specified"
    age: str = "Not specified"

    cuisine_preferences: str = "Any"
    budget: str = "Moderate"
    cooking_time: str = "30 minutes"
    equipment: str = "Basic kitchen"

    recipe_mode: bool = False

    model_config = ConfigDict(frozen=True)

    def as_prompt_fields(self) -> Dict[str, str]:
        """Every field rendered as prompt text; empty lists become 'None'."""
        fields = {}
        for key, value in self.model_dump(exclude={"recipe_mode", "user_id"}).items():
            if isinstance(value, list):
                fields[key] = ", ".join(value) if value else "None"
            else:
                fields[key] = str(value)
        return fields


# API request/response schemas

class ChatRequest(BaseModel):
    """Chat message request."""
    message: str = Field(..., min_length=1)
    session_id: str
    user_id: Optional[str] = None
    # Clients may resend the suggestions they were shown
    pending_replacement: Optional[PendingReplacement] = None


class ChatResponse(BaseModel):
    """Chat message response."""
    session_id: str
    reply: str
    suggestions: List[str] = Field(default_factory=list)
    intent: str
    model: str
    applied_mutation: Optional[MutationResult] = None
    pending_replacement: Optional[PendingReplacement] = None
    replacement_suggestions: Optional[ReplacementSuggestions] = None
    modification: Optional[MealModification] = None


class ChatMessage(BaseModel):
    role: str
    content: str
    intent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatHistoryResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]


class RecipeModeRequest(BaseModel):
    user_id: str
    enabled: bool


class RecipeModeResponse(BaseModel):
    user_id: str
    recipe_mode: bool


class SuggestReplacementRequest(BaseModel):
    """Either current_meal or (day, meal_type) identifies the meal to replace."""
    user_id: str
    reason: str = ""
    current_meal: Optional[Dict[str, Any]] = None
    day: Optional[str] = None
    meal_type: Optional[str] = None


class SuggestReplacementResponse(BaseModel):
    user_id: str
    current_meal: MealSlot
    day: Optional[str] = None
    meal_type: Optional[str] = None
    suggestions: ReplacementSuggestions


class ConfirmReplacementRequest(BaseModel):
    """Apply either an explicit candidate or an index into fresh suggestions."""
    user_id: str
    day: str
    meal_type: str
    replacement: Optional[Dict[str, Any]] = None
    candidate_index: Optional[int] = Field(None, ge=0)
    reason: str = ""


class ModifyMealRequest(BaseModel):
    user_id: str
    request: str = Field(..., min_length=1)
    day: Optional[str] = None
    meal_type: Optional[str] = None


class CurrentMealPlanResponse(BaseModel):
    plan: WeeklyPlan
    today: Optional[DayPlan] = None


class SaveMealPlanRequest(BaseModel):
    user_id: str
    week: List[DayPlan] = Field(..., min_length=1)


class AIUpdateRequest(BaseModel):
    """Suggest replacements for a planned meal, or apply one right away with auto_confirm."""
    user_id: str
    day: str
    meal_type: str
    instruction: str = ""
    auto_confirm: bool = False
    selected_replacement_index: int = Field(0, ge=0)


class AIUpdateResponse(BaseModel):
    message: str
    suggestions: Optional[ReplacementSuggestions] = None
    applied: Optional[AppliedReplacement] = None


class SubstitutionRequest(BaseModel):
    """The dish is sent as current_recipe or looked up by day and meal_type."""
    user_id: str
    disliked_ingredients: List[str] = Field(..., min_length=1)
    current_recipe: Optional[Dict[str, Any]] = None
    day: Optional[str] = None
    meal_type: Optional[str] = None


class MealFeedbackRequest(BaseModel):
    user_id: str
    original_meal: Optional[str] = None
    chosen_replacement: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    feedback: str = ""
    reason: str = ""


class MealFeedbackResult(BaseModel):
    user_id: str
    feedback_count: int
    avoided_meals: List[str] = Field(default_factory=list)
    improved_categories: List[str] = Field(default_factory=list)


class CacheStats(BaseModel):
    hits: int
    misses: int
    hit_rate: float
    memory_entries: int
    redis_enabled: bool


class CacheClearResponse(BaseModel):
    user_id: str
    removed: int


class ChatTurnResult(BaseModel):
    """Outcome of one chat turn."""
    reply: str
    suggestions: List[str] = Field(default_factory=list)
    intent: IntentKind = IntentKind.NONE
    model: str = "assistant"
    applied_mutation: Optional[MutationResult] = None
    pending_replacement: Optional[PendingReplacement] = None
    replacement_suggestions: Optional[ReplacementSuggestions] = None
    modification: Optional[MealModification] = None
