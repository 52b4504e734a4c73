"""Shared fixtures: in-memory database, scripted LLM client and plan factories."""
import json
import sys
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the backend directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from nutriplan.core.config import Settings  # noqa: E402
from nutriplan.core.constants import MenuConstants  # noqa: E402
from nutriplan.core.llm_client import LLMClient  # noqa: E402
from nutriplan.db import crud_meal_plans, crud_users  # noqa: E402
from nutriplan.db.session import init_db  # noqa: E402
from nutriplan.services.chat.orchestrator import ConversationOrchestrator  # noqa: E402
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine  # noqa: E402
from nutriplan.services.plan_mutation import PlanMutationService  # noqa: E402
from nutriplan.services.suggestion_cache import SuggestionCache  # noqa: E402


def make_settings(**overrides) -> Settings:
    values = {
        "llm_base_url": "http://llm.test",
        "llm_models": ["model-a", "model-b"],
        "llm_max_retries": 2,
        "llm_backoff_base_seconds": 0.5,
        "redis_url": None,
    }
    values.update(overrides)
    return Settings(**values)


def http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://llm.test/api/generate")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class ScriptedLLM(LLMClient):
    """LLMClient whose HTTP call is replaced by a queue of canned results."""

    def __init__(self, responses=None, settings=None):
        self.sleeps = []
        self.calls = []
        self.responses = list(responses or [])
        super().__init__(settings or make_settings(), sleep=self._record_sleep)

    async def _record_sleep(self, seconds):
        self.sleeps.append(seconds)

    async def _call_model(self, model, prompt, system=None, temperature=None):
        self.calls.append({"model": model, "prompt": prompt, "system": system})
        if not self.responses:
            raise AssertionError(f"Unexpected LLM call to {model}")
        result = self.responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


# Four usable replacements (one a near-duplicate) and one without a name
AI_RESPONSE = json.dumps({
    "replacements": [
        {
            "name": "Mediterranean Chicken Salad",
            "description": "Light mediterranean salad with grilled chicken",
            "calories": 380,
            "macros": {"protein": 32, "carbs": 18, "fat": 16},
            "prepTime": "15 minutes",
            "ingredients": ["chicken breast", "cucumber", "tomato", "olive oil"],
            "whyGoodReplacement": "Lighter than rice and dal",
        },
        {
            "name": "Mediterranean Chicken Salad Bowl",
            "description": "Light mediterranean salad with grilled chicken",
            "calories": 400,
            "ingredients": ["chicken breast", "cucumber", "tomato", "olive oil"],
        },
        {
            "name": "Tofu Stir Fry",
            "description": "Quick chinese style stir fry",
            "calories": 350,
            "ingredients": ["tofu", "broccoli", "soy sauce"],
        },
        {
            "title": "Paneer Tikka Bowl",
            "summary": "Indian spiced paneer with peppers",
            "calories": "420 kcal",
            "ingredients": ["paneer", "bell pepper", "yogurt"],
        },
        {"description": "No name, dropped"},
    ],
    "smartSubstitutions": [{"dontLike": "white rice", "replaceWith": ["quinoa"], "nutritionalImpact": "More fibre"}],
    "personalizedTips": ["Eat slowly"],
})


def meal(dish, calories, protein=20, carbs=40, fats=10):
    return {
        "dish": dish,
        "calories": calories,
        "protein": protein,
        "carbs": carbs,
        "fats": fats,
        "recipe": f"Cook the {dish.lower()}.",
        "tags": ["meal"],
    }


def make_week(days=None):
    """One entry per day; dinner is always the biggest meal."""
    week = []
    for day in days or MenuConstants.DAYS_OF_WEEK:
        week.append({
            "day": day,
            "breakfast": meal("Oats Porridge", 350, protein=12, carbs=55, fats=8),
            "lunch": meal("Rice and Dal", 500, protein=20, carbs=80, fats=10),
            "dinner": meal("Butter Chicken", 700, protein=40, carbs=30, fats=45),
        })
    return week


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def user_factory(db):
    def create(user_id="user-1", **fields):
        data = {"id": user_id, "preferences": {"activityLevel": "Light"}}
        data.update(fields)
        return crud_users.user.create(db, obj_in=crud_users.UserCreate(**data))
    return create


@pytest.fixture
def plan_factory(db):
    def create(user_id="user-1", week=None):
        return crud_meal_plans.meal_plan.create(
            db,
            obj_in=crud_meal_plans.MealPlanCreate(user_id=user_id, week=week if week is not None else make_week()),
        )
    return create


def make_orchestrator(responses=None):
    """Orchestrator wired to a scripted LLM; "today" is always Monday."""
    llm = ScriptedLLM(responses)
    engine = ReplacementSuggestionEngine(llm, SuggestionCache())
    orchestrator = ConversationOrchestrator(
        engine,
        PlanMutationService(),
        llm,
        settings=make_settings(),
        today=lambda: "monday",
    )
    return orchestrator, llm
