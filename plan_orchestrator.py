"""
Plan Orchestrator
=================

Drives the DayGenerator over days 1..5 and assembles the final MealPlan.

- Days run strictly in order; each day's duplicate check depends on every
  meal accepted before it.
- One ConversationState and one SimilarityChecker per run.
- A day that exhausts its attempts gets one corrective retry seeded with
  the last failure; if that also fails, the whole plan fails.
- Progress is reported through an injected callback; a failing callback
  never affects generation.

Usage:
    orchestrator = PlanOrchestrator(get_chat_client(), progress_callback=print)
    plan = await orchestrator.generate_plan(profile)
"""

import asyncio
import uuid
from typing import Callable, List, Optional, Sequence

import config
from conversation import ConversationState
from day_generator import DayGenerator, DayResult, backoff_seconds
from macro_validator import validate_meal_plan
from meal_models import PLAN_DAYS, Meal, MealPlan, ProgressEvent, RevisionRequest, UserProfile
from nutrition_targets import NutritionTargets, calculate_nutrition_targets
from plan_reviser import PlanReviser
from planner_errors import ExhaustedRetriesError, error_from_result
from similarity_checker import SimilarityChecker
from tools.logging_utils import get_logger, log_with_emoji

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class PlanOrchestrator:
    """
    Runs one plan generation (or revision) per call.

    Args:
        llm_client: Chat client with `async chat(...)`
        progress_callback: Optional callable receiving ProgressEvent
    """

    def __init__(self, llm_client, progress_callback: Optional[ProgressCallback] = None):
        self.llm = llm_client
        self.progress_callback = progress_callback

    def _emit(self, day: int, message: str, progress: int) -> None:
        event = ProgressEvent(day=day, message=message, progress=progress)
        log_with_emoji(logger, f"📊 [{progress:3d}%] {message}")
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(event)
        except Exception as e:
            # fire-and-forget
            logger.warning(f"⚠️ Progress callback failed: {e}")

    async def generate_plan(self, profile: UserProfile) -> MealPlan:
        """
        Generate a complete 5-day plan.

        Args:
            profile: UserProfile for the run

        Returns:
            Validated MealPlan with a fresh identifier

        Raises:
            ExhaustedRetriesError: A day failed its attempts and the corrective retry
            StructuralError / MacroValidationError / DietaryViolationError:
                the assembled plan failed plan-level validation
        """
        targets = calculate_nutrition_targets(profile)
        conversation = ConversationState(
            full_prompt_days=config.GENERATION_CONFIG["full_system_prompt_days"]
        )
        generator = DayGenerator(self.llm, profile, targets, SimilarityChecker())

        log_with_emoji(logger, f"🚀 Generating {PLAN_DAYS}-day plan at {targets.daily_calories} kcal/day")
        accepted: List[Meal] = []
        for day in range(1, PLAN_DAYS + 1):
            self._emit(day, f"Generating day {day} of {PLAN_DAYS}", int((day - 1) * 100 / PLAN_DAYS))
            result = await self._generate_day_with_correction(generator, day, accepted, conversation)
            accepted.extend(result.meals)

        plan = self.assemble_plan(accepted, profile, targets)
        self._emit(PLAN_DAYS, "Meal plan complete", 100)
        return plan

    async def _generate_day_with_correction(
        self,
        generator: DayGenerator,
        day: int,
        accepted: Sequence[Meal],
        conversation: ConversationState,
    ) -> DayResult:
        conversation.record_digest(accepted)
        try:
            return await generator.generate_day(day, accepted, conversation)
        except ExhaustedRetriesError as exhausted:
            corrective = config.GENERATION_CONFIG["orchestrator_corrective_retries"]
            if corrective <= 0:
                raise
            delay = backoff_seconds(exhausted.attempts)
            log_with_emoji(logger, f"🔄 Day {day} exhausted its attempts, corrective retry in {delay:.1f}s")
            conversation.record_error(day, exhausted.attempts + 1,
                                      f"All attempts failed. Last error: {exhausted.last_error}")
            await asyncio.sleep(delay)
            try:
                return await generator.generate_day(
                    day, accepted, conversation,
                    last_failure=exhausted.last_error,
                    max_attempts=corrective,
                    first_attempt=exhausted.attempts + 1,
                )
            except ExhaustedRetriesError:
                log_with_emoji(logger, f"❌ Plan generation aborted at day {day}")
                raise

    def assemble_plan(
        self,
        meals: Sequence[Meal],
        profile: UserProfile,
        targets: NutritionTargets,
        plan_id: Optional[str] = None,
    ) -> MealPlan:
        """Build the MealPlan, attach profile snacks/favorites, validate it."""
        plan = MealPlan(
            plan_id=plan_id or str(uuid.uuid4()),
            meals=sorted_meals(meals),
            snacks=list(profile.snacks) if profile.include_snacks else [],
            favorite_meals=list(profile.favorite_meals) if profile.include_favorite_meals else [],
        )
        result = validate_meal_plan(plan, targets, profile.dietary_restrictions)
        if not result.valid:
            logger.error(f"❌ Assembled plan failed validation: {result.reason}")
            raise error_from_result(result)
        log_with_emoji(logger, f"✅ Plan {plan.plan_id} assembled with {len(plan.meals)} meals")
        return plan

    async def revise_plan(
        self,
        plan: MealPlan,
        requests: Sequence[RevisionRequest],
        profile: UserProfile,
    ) -> MealPlan:
        """Apply revision requests to an approved plan (see plan_reviser)."""
        return await PlanReviser(self.llm).revise_plan(plan, requests, profile)


def sorted_meals(meals: Sequence[Meal]) -> List[Meal]:
    return MealPlan(plan_id="", meals=list(meals)).sorted_meals()
