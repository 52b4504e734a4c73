"""
Tests for rule-based intent classification.
"""
from nutriplan.db.schema import IntentKind
from nutriplan.services.chat.intent import SessionState, classify, extract_meal_type, extract_option_number

PENDING = SessionState(has_pending=True)


def test_vague_dislike_is_replacement():
    result = classify("I don't like my dinner")
    assert result.kind == IntentKind.REPLACEMENT
    assert result.meal_type == "dinner"
    assert result.day is None
    assert not result.is_direct


def test_named_replacement_is_direct():
    result = classify("Replace Monday's lunch with a salad")
    assert result.kind == IntentKind.DIRECT_REPLACEMENT
    assert result.is_direct
    assert result.day == "monday"
    assert result.meal_type == "lunch"


def test_auto_apply_phrase_is_direct():
    result = classify("change my breakfast, just go ahead")
    assert result.kind == IntentKind.DIRECT_REPLACEMENT


def test_plan_query_never_triggers_a_write():
    result = classify("What's my meal plan for today? I want to change dinner maybe")
    assert result.kind == IntentKind.NONE
    assert result.is_plan_query


def test_option_number_is_confirmation_only_while_pending():
    assert classify("option 2").kind == IntentKind.NONE

    result = classify("option 2", PENDING)
    assert result.kind == IntentKind.CONFIRMATION
    assert result.option_index == 1


def test_option_zero_is_kept_out_of_range():
    result = classify("option 0", PENDING)
    assert result.kind == IntentKind.CONFIRMATION
    assert result.option_index == -1


def test_option_phrasings():
    assert classify("Replace it with option 3", PENDING).option_index == 2
    assert classify("go ahead with option 1", PENDING).option_index == 0
    assert classify("the second one please", PENDING).option_index == 1


def test_affirmative_confirms_first_option():
    result = classify("yes", PENDING)
    assert result.kind == IntentKind.CONFIRMATION
    assert result.option_index is None


def test_affirmative_with_new_request_is_not_confirmation():
    result = classify("yes but change my lunch instead", PENDING)
    assert result.kind in (IntentKind.REPLACEMENT, IntentKind.DIRECT_REPLACEMENT)


def test_modification_request():
    assert classify("can you make it healthier?").kind == IntentKind.MODIFICATION
    assert classify("add more protein").kind == IntentKind.MODIFICATION


def test_recipe_request():
    assert classify("how to make besan cheela").kind == IntentKind.RECIPE
    assert classify("give me a recipe").kind == IntentKind.RECIPE


def test_food_words_match_whole_words_only():
    # "tea" must not fire on "steak", "rice" must not fire on "price"
    assert classify("what is the price of steak").kind == IntentKind.NONE


def test_recipe_mode_treats_short_messages_as_recipes():
    assert classify("something warm").kind == IntentKind.NONE
    assert classify("something warm", SessionState(recipe_mode=True)).kind == IntentKind.RECIPE


def test_option_wins_over_recipe_mode():
    state = SessionState(has_pending=True, recipe_mode=True)
    assert classify("option 2", state).kind == IntentKind.CONFIRMATION


def test_general_message_falls_through():
    result = classify("How much water should I drink?")
    assert result.kind == IntentKind.NONE
    assert not result.is_plan_query


def test_meal_type_synonyms():
    assert extract_meal_type("something lighter in the evening") == "dinner"
    assert extract_meal_type("my morning meal") == "breakfast"
    assert extract_meal_type("hello") is None


def test_extract_option_number():
    assert extract_option_number("number 3") == 3
    assert extract_option_number("option #2") == 2
    assert extract_option_number("nothing here") is None
