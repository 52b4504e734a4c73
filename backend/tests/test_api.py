"""
Tests for the HTTP surface, with services and database swapped for test doubles.
"""
import json

import pytest
from conftest import AI_RESPONSE, http_error, make_orchestrator, make_week
from fastapi.testclient import TestClient

from nutriplan.api.deps import get_engine, get_mutations, get_orchestrator
from nutriplan.core.exceptions import AIUnavailableError
from nutriplan.db.session import get_db
from nutriplan.main import app


@pytest.fixture
def api(db):
    """Build a client whose LLM answers with the given responses."""
    def build(responses=None):
        orchestrator, llm = make_orchestrator(responses)
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        app.dependency_overrides[get_engine] = lambda: orchestrator.engine
        app.dependency_overrides[get_mutations] = lambda: orchestrator.mutations
        return TestClient(app), llm

    yield build
    app.dependency_overrides.clear()


def test_health(api):
    client, _ = api()
    assert client.get("/").json()["status"] == "healthy"
    assert client.get("/health").json()["suggestion_cache"] in ("memory", "redis")


def test_chat_suggest_then_confirm(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api([AI_RESPONSE])

    first = client.post("/api/chat/message", json={
        "message": "I don't like my dinner",
        "session_id": "s1",
        "user_id": "user-1",
    })
    assert first.status_code == 200
    body = first.json()
    assert body["intent"] == "meal_replacement"
    assert len(body["pending_replacement"]["candidates"]) == 3
    assert "Replace it with option 1" in body["suggestions"]

    second = client.post("/api/chat/message", json={"message": "option 2", "session_id": "s1", "user_id": "user-1"})
    body = second.json()
    assert body["intent"] == "confirmation"
    assert body["applied_mutation"]["meal_type"] == "dinner"
    assert body["applied_mutation"]["updated_meal"]["dish"] == "Tofu Stir Fry"

    history = client.get("/api/chat/history/s1").json()
    assert [m["role"] for m in history["messages"]] == ["user", "assistant", "user", "assistant"]
    assert not history["messages"][1]["content"].startswith("{")


def test_chat_missing_day_is_a_normal_reply(api, user_factory, plan_factory):
    user_factory()
    plan_factory(week=make_week(["tuesday"]))
    client, _ = api()

    response = client.post("/api/chat/message", json={
        "message": "replace Monday's lunch with a salad",
        "session_id": "s2",
        "user_id": "user-1",
    })
    assert response.status_code == 200
    assert "Monday" in response.json()["reply"]


def test_chat_stream(api):
    reply = "Hydration matters. " * 30
    client, _ = api([reply])

    response = client.post("/api/chat/message/stream", json={"message": "How much water?", "session_id": "s3"})

    assert response.status_code == 200
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    chunks = [line["chunk"] for line in lines[:-1]]
    assert "".join(chunks) == reply.strip()
    assert all(len(chunk) <= 250 for chunk in chunks)
    assert lines[-1]["done"] is True
    assert "suggestions" in lines[-1]


def test_recipe_mode_toggle(api, user_factory):
    user_factory()
    client, _ = api()

    response = client.post("/api/chat/recipe-mode", json={"user_id": "user-1", "enabled": True})
    assert response.json() == {"user_id": "user-1", "recipe_mode": True}

    missing = client.post("/api/chat/recipe-mode", json={"user_id": "nobody", "enabled": True})
    assert missing.status_code == 404


def test_replace_endpoint(api, user_factory):
    user_factory()
    client, _ = api([AI_RESPONSE])

    response = client.post("/api/meals/replace", json={
        "user_id": "user-1",
        "reason": "too heavy",
        "current_meal": {"dish": "Rice and Dal", "calories": 500, "protein": 20, "carbs": 80, "fats": 10},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["current_meal"]["dish"] == "Rice and Dal"
    assert len(body["suggestions"]["replacements"]) == 3


def test_replace_needs_a_meal(api):
    client, _ = api()
    response = client.post("/api/meals/replace", json={"user_id": "user-1", "reason": "bored"})
    assert response.status_code == 422
    assert response.json()["fields"] == ["current_meal"]


def test_replace_ai_unavailable(api):
    client, _ = api([http_error(503)] * 4)
    response = client.post("/api/meals/replace", json={
        "user_id": "user-1",
        "current_meal": {"dish": "Rice and Dal"},
    })
    assert response.status_code == 503
    assert response.json()["detail"] == AIUnavailableError.user_message


def test_confirm_replace_with_explicit_candidate(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api()

    response = client.post("/api/meals/confirm-replace", json={
        "user_id": "user-1",
        "day": "Monday",
        "meal_type": "dinner",
        "replacement": {"name": "Grilled Fish", "calories": 400},
    })

    assert response.status_code == 200
    updated = response.json()["updated_meal"]
    assert (updated["protein"], updated["carbs"], updated["fats"]) == (20, 50, 13)
    assert response.json()["original_meal"]["dish"] == "Butter Chicken"


def test_confirm_replace_with_candidate_index(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api([AI_RESPONSE])

    response = client.post("/api/meals/confirm-replace", json={
        "user_id": "user-1",
        "day": "monday",
        "meal_type": "lunch",
        "candidate_index": 2,
    })

    assert response.status_code == 200
    assert response.json()["updated_meal"]["dish"] == "Paneer Tikka Bowl"


def test_confirm_replace_validation(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api()

    no_name = client.post("/api/meals/confirm-replace", json={
        "user_id": "user-1", "day": "monday", "meal_type": "lunch", "replacement": {"calories": 300},
    })
    assert no_name.status_code == 422
    assert no_name.json()["fields"] == ["name"]

    nothing = client.post("/api/meals/confirm-replace", json={
        "user_id": "user-1", "day": "monday", "meal_type": "lunch",
    })
    assert nothing.status_code == 422


def test_confirm_replace_missing_day(api, user_factory, plan_factory):
    user_factory()
    plan_factory(week=[])
    client, _ = api()

    response = client.post("/api/meals/confirm-replace", json={
        "user_id": "user-1", "day": "friday", "meal_type": "lunch", "replacement": {"name": "Soup"},
    })
    assert response.status_code == 404
    assert "Friday" in response.json()["detail"]


def test_modify_endpoint(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    response_text = json.dumps({"modifiedMeal": {"name": "Oats with Berries", "calories": 320}})
    client, _ = api([response_text])

    response = client.post("/api/meals/modify", json={
        "user_id": "user-1", "request": "less sugar", "day": "tuesday", "meal_type": "breakfast",
    })

    assert response.status_code == 200
    assert response.json()["modifiedMeal"]["name"] == "Oats with Berries"


def test_current_meal_plan(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api()

    body = client.get("/api/meals/current/user-1").json()
    assert len(body["plan"]["week"]) == 7
    assert body["today"]["dinner"]["dish"] == "Butter Chicken"

    assert client.get("/api/meals/current/nobody").status_code == 404


def test_save_and_load_latest_plan(api):
    client, _ = api()

    assert client.get("/api/meals/plans/latest/user-9").status_code == 404

    saved = client.post("/api/meals/plans", json={"user_id": "user-9", "week": make_week(["Monday", "Tuesday"])})
    assert saved.status_code == 201
    assert [d["day"] for d in saved.json()["week"]] == ["monday", "tuesday"]

    latest = client.get("/api/meals/plans/latest/user-9").json()
    assert latest["id"] == saved.json()["id"]
    assert latest["week"][1]["dinner"]["dish"] == "Butter Chicken"

    empty = client.post("/api/meals/plans", json={"user_id": "user-9", "week": []})
    assert empty.status_code == 422


def test_ai_update_only_suggests_by_default(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api([AI_RESPONSE])

    response = client.post("/api/meals/ai-update", json={"user_id": "user-1", "day": "monday", "meal_type": "dinner"})

    assert response.status_code == 200
    body = response.json()
    assert len(body["suggestions"]["replacements"]) == 3
    assert body["applied"] is None
    assert client.get("/api/meals/plans/latest/user-1").json()["week"][0]["dinner"]["dish"] == "Butter Chicken"


def test_ai_update_auto_confirm(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    client, _ = api([AI_RESPONSE])

    response = client.post("/api/meals/ai-update", json={
        "user_id": "user-1",
        "day": "Monday",
        "meal_type": "lunch",
        "instruction": "something lighter",
        "auto_confirm": True,
        "selected_replacement_index": 2,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Replaced lunch for Monday"
    assert body["applied"]["mutation"]["updated_meal"]["dish"] == "Paneer Tikka Bowl"
    assert client.get("/api/meals/plans/latest/user-1").json()["week"][0]["lunch"]["dish"] == "Paneer Tikka Bowl"


def test_contextual_suggestions_endpoint(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    ideas = json.dumps({
        "suggestions": [{"mealName": "Egg Fried Rice", "contextReason": "Ready in 10 minutes"}],
        "moodFoodTips": "Keep it simple tonight",
    })
    client, llm = api([ideas])

    response = client.get("/api/meals/suggestions/user-1", params={"mood": "tired", "available_time": "10 minutes"})

    assert response.status_code == 200
    body = response.json()
    assert body["suggestions"][0]["mealName"] == "Egg Fried Rice"
    assert body["moodFoodTips"] == "Keep it simple tonight"
    prompt = llm.calls[0]["prompt"]
    assert "tired" in prompt
    assert "10 minutes" in prompt
    assert "Butter Chicken" in prompt


def test_substitutions_for_planned_meal(api, user_factory, plan_factory):
    user_factory()
    plan_factory()
    answer = json.dumps({"substitutions": [{"originalIngredient": "cream", "directSubstitutes": [{"substitute": "yogurt"}]}]})
    client, llm = api([answer])

    response = client.post("/api/meals/substitutions", json={
        "user_id": "user-1", "disliked_ingredients": ["cream"], "day": "monday", "meal_type": "dinner",
    })

    assert response.status_code == 200
    assert response.json()["substitutions"][0]["directSubstitutes"][0]["substitute"] == "yogurt"
    assert "Butter Chicken" in llm.calls[0]["prompt"]


def test_substitutions_need_a_dish(api):
    client, _ = api()
    response = client.post("/api/meals/substitutions", json={"user_id": "user-1", "disliked_ingredients": ["cream"]})
    assert response.status_code == 422
    assert response.json()["fields"] == ["current_recipe"]


def test_meal_feedback_endpoint(api, user_factory):
    user_factory()
    client, _ = api()

    response = client.post("/api/meals/feedback", json={
        "user_id": "user-1", "original_meal": "Butter Chicken", "chosen_replacement": "Tofu Stir Fry", "rating": 1,
    })
    assert response.status_code == 200
    assert response.json()["avoided_meals"] == ["Tofu Stir Fry"]

    missing = client.post("/api/meals/feedback", json={"user_id": "nobody", "rating": 3})
    assert missing.status_code == 404

    out_of_range = client.post("/api/meals/feedback", json={"user_id": "user-1", "rating": 6})
    assert out_of_range.status_code == 422


def test_cache_stats_and_clear(api, user_factory):
    user_factory()
    client, llm = api([AI_RESPONSE])
    request = {"user_id": "user-1", "reason": "too heavy", "current_meal": {"dish": "Rice and Dal", "calories": 500}}

    client.post("/api/meals/replace", json=request)
    client.post("/api/meals/replace", json=request)
    assert len(llm.calls) == 1

    stats = client.get("/api/chat/cache/stats").json()
    assert (stats["hits"], stats["misses"], stats["memory_entries"]) == (1, 1, 1)

    cleared = client.delete("/api/chat/cache/user-1").json()
    assert cleared == {"user_id": "user-1", "removed": 1}
    assert client.get("/api/chat/cache/stats").json()["memory_entries"] == 0
