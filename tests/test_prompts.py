"""
Tests for prompt construction.

Run: pytest tests/test_prompts.py -v
"""

import pytest

from conftest import sample_day_meals, sample_plan
from meal_models import RevisionRequest, ValidationResult
from planner_errors import ERROR_KINDS, MacroValidationError, error_from_result
from prompts import (
    build_accepted_meals_digest,
    build_day_prompt,
    build_revision_payload,
    build_targets_block,
)


class TestDayPrompt:

    @pytest.mark.readonly
    def test_contains_targets_and_day(self, profile, targets):
        prompt = build_day_prompt(3, profile, targets)
        assert "Day 3 of 5 (Wednesday)" in prompt
        assert "Daily Calories: 2000 (acceptable: 1560-2440)" in prompt
        assert '"day": 3' in prompt
        assert "PREVIOUS ERROR" not in prompt

    @pytest.mark.readonly
    def test_last_failure_embedded_verbatim(self, profile, targets):
        prompt = build_day_prompt(1, profile, targets, last_failure="protein 90g vs target 200g")
        assert 'failed with the following error: "protein 90g vs target 200g"' in prompt

    @pytest.mark.readonly
    def test_digest_optional(self, profile, targets):
        accepted = sample_day_meals(1)
        assert "PREVIOUSLY GENERATED MEALS" in build_day_prompt(2, profile, targets, accepted)
        assert "PREVIOUSLY GENERATED MEALS" not in build_day_prompt(
            2, profile, targets, accepted, include_digest=False
        )

    @pytest.mark.readonly
    def test_targets_block_minimums(self, targets):
        block = build_targets_block(targets)
        assert "Breakfast: 600 calories (ABSOLUTE MINIMUM: 500, MAXIMUM: 700)" in block
        assert "MINIMUM MACROS: 50g protein, 38g carbs, 17g fat" in block


class TestDigest:

    @pytest.mark.readonly
    def test_names_and_proteins_only(self):
        digest = build_accepted_meals_digest(sample_day_meals(1))
        assert "- Day 1 breakfast: Spinach Feta Omelette (protein: eggs)" in digest
        assert "Cook and serve." not in digest
        assert build_accepted_meals_digest([]) == ""


class TestRevisionPayload:

    @pytest.mark.readonly
    def test_affected_days_only(self):
        requests = [RevisionRequest(day=2, meal_type="lunch", description="x")]
        payload = build_revision_payload(sample_plan(), requests)
        assert {m["day"] for m in payload["meals"]} == {2}
        changed = [m for m in payload["meals"] if m["mealType"] == "lunch"][0]
        kept = [m for m in payload["meals"] if m["mealType"] == "dinner"][0]
        assert "recipe" in changed
        assert "recipe" not in kept


class TestErrorMapping:

    @pytest.mark.readonly
    def test_error_from_result(self):
        result = ValidationResult.failed("macro", "too little protein", suggestions=["increase protein"])
        error = error_from_result(result, day=2)
        assert isinstance(error, MacroValidationError)
        assert str(error) == "[day 2] too little protein"
        assert error.details["suggestions"] == ["increase protein"]
        assert set(ERROR_KINDS) == {"parse", "duplicate", "macro", "structural", "dietary"}
