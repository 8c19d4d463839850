"""
Tests for the per-day attempt loop.

Uses the scripted FakeChatClient; asyncio.sleep is patched out (no_sleep).

Run: pytest tests/test_day_generator.py -v
"""

import pytest

from conftest import FakeChatClient, day_reply, make_meal, run_async, sample_day_meals
from conversation import ConversationState
from day_generator import (
    AttemptOutcome,
    DayGenerator,
    DayState,
    attempt_temperature,
    backoff_seconds,
    next_state,
)
from meal_models import UserProfile
from planner_errors import (
    DietaryViolationError,
    DuplicateMealError,
    ExhaustedRetriesError,
    LLMServiceError,
    MacroValidationError,
    ParseError,
)
from similarity_checker import SimilarityChecker


# =============================================================================
# Test: Attempt discipline
# =============================================================================

class TestAttemptSchedule:

    @pytest.mark.readonly
    def test_temperature_falls_to_floor(self):
        assert attempt_temperature(1) == pytest.approx(0.7)
        assert attempt_temperature(2) == pytest.approx(0.5)
        assert attempt_temperature(3) == pytest.approx(0.3)
        assert attempt_temperature(5) == pytest.approx(0.3)

    @pytest.mark.readonly
    def test_backoff_is_capped(self):
        assert backoff_seconds(1) == pytest.approx(1.0)
        assert backoff_seconds(2) == pytest.approx(2.0)
        assert backoff_seconds(3) == pytest.approx(4.0)
        assert backoff_seconds(4) == pytest.approx(5.0)

    @pytest.mark.readonly
    def test_state_transitions(self):
        accepted = AttemptOutcome(DayState.ACCEPTED, 1)
        assert next_state(accepted, 3) is DayState.ACCEPTED
        assert next_state(AttemptOutcome(DayState.RETRYING, 1), 3) is DayState.RETRYING
        assert next_state(AttemptOutcome(DayState.RETRYING, 3), 3) is DayState.FAILED


# =============================================================================
# Test: validate_reply
# =============================================================================

class TestValidateReply:
    """Validation order: parse, structure, duplicates, floor, dietary, macros."""

    @pytest.mark.readonly
    def test_valid_reply(self, profile, targets):
        generator = DayGenerator(FakeChatClient([]), profile, targets)
        meals = generator.validate_reply(1, day_reply(sample_day_meals(1)), [])
        assert meals == sample_day_meals(1)

    @pytest.mark.readonly
    def test_unparseable(self, profile, targets):
        generator = DayGenerator(FakeChatClient([]), profile, targets)
        with pytest.raises(ParseError):
            generator.validate_reply(1, "sorry, no plan today", [])

    @pytest.mark.readonly
    def test_duplicate_of_earlier_day(self, profile, targets):
        generator = DayGenerator(FakeChatClient([]), profile, targets)
        accepted = sample_day_meals(1)
        repeat = sample_day_meals(2)
        repeat[0] = make_meal(2, "breakfast", "Spinach Feta Omelette", 64, 50, 23)
        with pytest.raises(DuplicateMealError) as exc:
            generator.validate_reply(2, day_reply(repeat), accepted)
        assert exc.value.day == 2

    @pytest.mark.readonly
    def test_floor_checked_before_macros(self, profile, targets):
        generator = DayGenerator(FakeChatClient([]), profile, targets)
        meals = sample_day_meals(1)
        meals[0] = make_meal(1, "breakfast", "Egg White Scramble", 30, 5, 0)
        with pytest.raises(MacroValidationError) as exc:
            generator.validate_reply(1, day_reply(meals), [])
        assert "whole eggs" in exc.value.message

    @pytest.mark.readonly
    def test_dietary_restriction(self, targets):
        profile = UserProfile(weekday_calories=2000, macro_split="40/30/30",
                              dietary_restrictions=frozenset({"dairy-free"}))
        generator = DayGenerator(FakeChatClient([]), profile, targets)
        with pytest.raises(DietaryViolationError):
            generator.validate_reply(2, day_reply(sample_day_meals(2)), [])


# =============================================================================
# Test: generate_day
# =============================================================================

class TestGenerateDay:
    """Tests for DayGenerator.generate_day()"""

    @pytest.mark.readonly
    def test_first_attempt_accepted(self, profile, targets, no_sleep):
        llm = FakeChatClient([day_reply(sample_day_meals(1))])
        result = run_async(DayGenerator(llm, profile, targets).generate_day(1))
        assert result.attempts == 1
        assert [m.meal_type for m in result.meals] == ["breakfast", "lunch", "dinner"]
        assert llm.calls[0]["temperature"] == pytest.approx(0.7)
        assert llm.calls[0]["max_tokens"] == 4000
        no_sleep.assert_not_called()

    @pytest.mark.readonly
    def test_retry_feeds_failure_into_next_prompt(self, profile, targets, no_sleep):
        llm = FakeChatClient(["not json at all", day_reply(sample_day_meals(1))])
        result = run_async(DayGenerator(llm, profile, targets).generate_day(1))
        assert result.attempts == 2
        assert llm.calls[1]["temperature"] == pytest.approx(0.5)
        retry_prompt = llm.calls[1]["messages"][-1]["content"]
        assert "PREVIOUS ERROR (MUST BE FIXED)" in retry_prompt
        assert "no JSON object" in retry_prompt
        no_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.readonly
    def test_llm_error_counts_as_attempt(self, profile, targets, no_sleep):
        llm = FakeChatClient([LLMServiceError("OpenRouter error 503", status_code=503),
                              day_reply(sample_day_meals(1))])
        result = run_async(DayGenerator(llm, profile, targets).generate_day(1))
        assert result.attempts == 2

    @pytest.mark.readonly
    def test_exhausted_after_three_attempts(self, profile, targets, no_sleep):
        llm = FakeChatClient(["nope", "still nope", "{\"plan\": []}"])
        with pytest.raises(ExhaustedRetriesError) as exc:
            run_async(DayGenerator(llm, profile, targets).generate_day(3))
        assert exc.value.day == 3
        assert exc.value.attempts == 3
        assert "'meals' array" in exc.value.last_error
        assert [c["temperature"] for c in llm.calls] == pytest.approx([0.7, 0.5, 0.3])
        assert [call.args[0] for call in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.readonly
    def test_max_attempts_override(self, profile, targets, no_sleep):
        llm = FakeChatClient(["nope"])
        with pytest.raises(ExhaustedRetriesError) as exc:
            run_async(DayGenerator(llm, profile, targets).generate_day(1, max_attempts=1))
        assert exc.value.attempts == 1
        assert len(llm.calls) == 1

    @pytest.mark.readonly
    def test_first_attempt_offset(self, profile, targets, no_sleep):
        llm = FakeChatClient(["nope", "nope"])
        with pytest.raises(ExhaustedRetriesError) as exc:
            run_async(DayGenerator(llm, profile, targets).generate_day(
                1, max_attempts=2, first_attempt=2
            ))
        assert exc.value.attempts == 3
        assert [c["temperature"] for c in llm.calls] == pytest.approx([0.5, 0.3])
        no_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.readonly
    def test_rejected_attempt_does_not_poison_checker(self, profile, targets, no_sleep):
        """Meals from a rejected attempt must not count as duplicates on the retry."""
        meals = sample_day_meals(1)
        too_much_fat = list(meals)
        too_much_fat[2] = make_meal(1, "dinner", meals[2].name, 75, 57, 60,
                                    [i.name for i in meals[2].ingredients])
        llm = FakeChatClient([day_reply(too_much_fat), day_reply(meals)])
        checker = SimilarityChecker()
        result = run_async(DayGenerator(llm, profile, targets, checker).generate_day(1))
        assert result.attempts == 2

    @pytest.mark.readonly
    def test_conversation_records_errors_and_success(self, profile, targets, no_sleep):
        llm = FakeChatClient(["nope", day_reply(sample_day_meals(1))])
        conversation = ConversationState()
        run_async(DayGenerator(llm, profile, targets).generate_day(1, [], conversation))

        kinds = [m.kind for m in conversation.messages]
        assert kinds == ["request", "response", "error", "request", "response", "success", "ack"]
        assert conversation.messages[1].content == "nope"
        # the retry saw the error message from attempt 1
        retry_messages = llm.calls[1]["messages"]
        assert retry_messages[0]["content"].startswith("Day 1 attempt 1 was rejected")

    @pytest.mark.readonly
    def test_raw_replies_stay_out_of_trimmed_context(self, profile, targets, no_sleep):
        llm = FakeChatClient(["nope", day_reply(sample_day_meals(1))])
        conversation = ConversationState()
        run_async(DayGenerator(llm, profile, targets).generate_day(1, [], conversation))

        retry_messages = llm.calls[1]["messages"]
        assert len(retry_messages) == 2
        assert all(m["role"] == "user" for m in retry_messages)
        assert "nope" not in [m["content"] for m in retry_messages]
