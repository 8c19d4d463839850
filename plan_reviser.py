"""
Plan Revision & Merge
=====================

Applies user change requests to an approved plan without regenerating the
whole week:

1. Build a token-reduced prompt holding only the affected days
2. Ask the model for only those days' three meals
3. Merge the partial result into a copy of the plan on (day, meal type)
4. Re-validate only the changed days

Same attempt discipline as day generation (3 attempts, falling
temperature, capped exponential backoff). The revised plan keeps the
original plan identifier; the input plan is never modified.
"""

import asyncio
from typing import List, Optional, Sequence

import config
from day_generator import attempt_temperature, backoff_seconds
from macro_validator import validate_changed_days
from meal_models import MEAL_TYPES, PLAN_DAYS, Meal, MealPlan, RevisionRequest, UserProfile
from nutrition_targets import NutritionTargets, calculate_nutrition_targets
from planner_errors import (
    ExhaustedRetriesError,
    LLMServiceError,
    RecoverableGenerationError,
    StructuralError,
    error_from_result,
)
from prompts import REVISION_SYSTEM_PROMPT, build_revision_prompt
from response_parser import parse_meals
from tools.logging_utils import get_logger

logger = get_logger(__name__)


def merge_partial_plan(plan: MealPlan, partial_meals: Sequence[Meal]) -> MealPlan:
    """
    Merge partial meals into a copy of `plan`.

    Entries replace the existing meal with the same (day, meal type);
    unmatched entries are appended. The plan id, snacks and favorites carry
    over unchanged.

    Returns:
        New MealPlan; `plan` is untouched
    """
    replacements = {}
    appended: List[Meal] = []
    existing_keys = {m.key for m in plan.meals}
    for meal in partial_meals:
        if meal.key in existing_keys:
            replacements[meal.key] = meal
        else:
            appended.append(meal)

    merged = [replacements.get(m.key, m) for m in plan.meals] + appended
    return MealPlan(
        plan_id=plan.plan_id,
        meals=MealPlan(plan_id=plan.plan_id, meals=merged).sorted_meals(),
        snacks=list(plan.snacks),
        favorite_meals=list(plan.favorite_meals),
    )


def validate_revision_requests(requests: Sequence[RevisionRequest]) -> None:
    """Reject requests pointing outside the 5 x 3 grid before calling the model."""
    if not requests:
        raise StructuralError("No revision requests given")
    for request in requests:
        if not 1 <= request.day <= PLAN_DAYS or request.meal_type not in MEAL_TYPES:
            raise StructuralError(
                f"Invalid revision target: day {request.day} {request.meal_type!r}"
            )


class PlanReviser:
    """
    Revision path for approved plans.

    Args:
        llm_client: Chat client with `async chat(...)`
    """

    def __init__(self, llm_client):
        self.llm = llm_client

    async def revise_plan(
        self,
        plan: MealPlan,
        requests: Sequence[RevisionRequest],
        profile: UserProfile,
        max_attempts: Optional[int] = None,
    ) -> MealPlan:
        """
        Revise the requested meals of `plan`.

        Args:
            plan: Complete, approved MealPlan
            requests: Change requests (day, meal type, description)
            profile: UserProfile for targets and restrictions
            max_attempts: Attempt ceiling (default from config, 3)

        Returns:
            Merged MealPlan with the original plan_id

        Raises:
            StructuralError: Requests outside the plan grid
            ExhaustedRetriesError: Every attempt was rejected
        """
        validate_revision_requests(requests)
        max_attempts = max_attempts or config.GENERATION_CONFIG["max_attempts"]
        targets = calculate_nutrition_targets(profile)
        days = sorted({r.day for r in requests})
        logger.info(f"🚀 Revising plan {plan.plan_id}: {len(requests)} change(s) on day(s) {days}")

        last_failure: Optional[str] = None
        attempt = 1
        while True:
            revised, failure = await self._run_attempt(plan, requests, profile, targets, attempt, last_failure)
            if revised is not None:
                logger.info(f"✅ Plan {plan.plan_id} revised on attempt {attempt}")
                return revised

            last_failure = failure
            if attempt >= max_attempts:
                logger.error(f"❌ Revision of plan {plan.plan_id} failed after {attempt} attempt(s)")
                raise ExhaustedRetriesError(None, attempt, last_failure, operation="revision")

            delay = backoff_seconds(attempt)
            logger.warning(f"⚠️ Revision attempt {attempt}/{max_attempts} rejected, "
                           f"retrying in {delay:.1f}s: {last_failure}")
            await asyncio.sleep(delay)
            attempt += 1

    async def _run_attempt(
        self,
        plan: MealPlan,
        requests: Sequence[RevisionRequest],
        profile: UserProfile,
        targets: NutritionTargets,
        attempt: int,
        last_failure: Optional[str],
    ):
        """Returns (revised plan, None) on success or (None, failure reason)."""
        prompt = build_revision_prompt(plan, requests, profile, targets, last_failure)
        try:
            reply = await self.llm.chat(
                system_prompt=REVISION_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                temperature=attempt_temperature(attempt),
                max_tokens=config.GENERATION_CONFIG["revision_max_tokens"],
            )
            requested_days = sorted({r.day for r in requests})
            default_day = requested_days[0] if len(requested_days) == 1 else None
            partial = parse_meals(reply, default_day=default_day)
            revised = merge_partial_plan(plan, partial)
            changed_days = set(requested_days) | {m.day for m in partial}
            result = validate_changed_days(revised, changed_days, targets, profile.dietary_restrictions)
            if not result.valid:
                raise error_from_result(result)
        except (RecoverableGenerationError, LLMServiceError) as e:
            return None, e.message
        return revised, None
