"""
Day Generator
=============

Generates and validates the three meals of one plan day.

State machine:

    DRAFTING -> VALIDATING -> ACCEPTED
                           -> RETRYING -> (backoff) -> DRAFTING
                           -> FAILED   (attempt ceiling reached)

Each attempt is one call to `_run_attempt(day, attempt, last_failure, ...)`
returning an AttemptOutcome; the attempt number and the last failure are
passed in and handed back explicitly.

Validation order inside an attempt:
    parse -> day structure -> duplicates -> per-meal floor -> dietary -> day macros
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import config
from conversation import ConversationState
from macro_validator import (
    check_day_calorie_floors,
    check_dietary_restrictions,
    validate_day_macros,
    validate_day_structure,
)
from meal_models import Meal, UserProfile, ValidationResult
from nutrition_targets import NutritionTargets
from planner_errors import (
    DuplicateMealError,
    ExhaustedRetriesError,
    LLMServiceError,
    RecoverableGenerationError,
    error_from_result,
)
from prompts import build_day_prompt, estimate_token_usage, system_prompt_for_day
from response_parser import parse_meals
from similarity_checker import SimilarityChecker
from tools.logging_utils import get_logger

logger = get_logger(__name__)


class DayState(Enum):
    DRAFTING = "drafting"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass
class AttemptOutcome:
    state: DayState
    attempt: int
    meals: List[Meal] = field(default_factory=list)
    failure: Optional[str] = None
    temperature: float = 0.0


@dataclass
class DayResult:
    day: int
    meals: List[Meal]
    attempts: int


def attempt_temperature(attempt: int) -> float:
    """max(0.3, 0.7 - 0.2 * (attempt - 1))"""
    gen = config.GENERATION_CONFIG
    temperature = gen["temperature_start"] - gen["temperature_step"] * (attempt - 1)
    return round(max(gen["temperature_floor"], temperature), 2)


def backoff_seconds(attempt: int) -> float:
    """min(1000 * 2^(attempt-1), 5000) ms, returned in seconds."""
    gen = config.GENERATION_CONFIG
    delay_ms = min(gen["backoff_base_ms"] * 2 ** (attempt - 1), gen["backoff_cap_ms"])
    return delay_ms / 1000


def next_state(outcome: AttemptOutcome, max_attempts: int) -> DayState:
    if outcome.state is DayState.ACCEPTED:
        return DayState.ACCEPTED
    return DayState.RETRYING if outcome.attempt < max_attempts else DayState.FAILED


class DayGenerator:
    """
    Drafts one day with the chat model and validates it.

    Args:
        llm_client: Object with `async chat(system_prompt, messages, temperature, max_tokens)`
        profile: UserProfile for the run
        targets: NutritionTargets derived from the profile
        similarity_checker: The run's SimilarityChecker (one per run)
    """

    def __init__(
        self,
        llm_client,
        profile: UserProfile,
        targets: NutritionTargets,
        similarity_checker: Optional[SimilarityChecker] = None,
    ):
        self.llm = llm_client
        self.profile = profile
        self.targets = targets
        self.similarity = similarity_checker or SimilarityChecker()

    async def generate_day(
        self,
        day: int,
        accepted_meals: Sequence[Meal] = (),
        conversation: Optional[ConversationState] = None,
        last_failure: Optional[str] = None,
        max_attempts: Optional[int] = None,
        first_attempt: int = 1,
    ) -> DayResult:
        """
        Run the attempt loop for one day.

        Args:
            day: Day to generate (1..5)
            accepted_meals: Meals accepted on earlier days
            conversation: Orchestrator conversation; trimmed before each call
            last_failure: Failure to feed into the first attempt's prompt
            max_attempts: Attempts to run in this call (default from config, 3)
            first_attempt: Number of the first attempt; later numbers lower the
                temperature and lengthen the backoff

        Returns:
            DayResult with the accepted meals (attempts is the accepting attempt number)

        Raises:
            ExhaustedRetriesError: Every attempt was rejected
        """
        max_attempts = max_attempts or config.GENERATION_CONFIG["max_attempts"]
        accepted_meals = list(accepted_meals)
        attempt = first_attempt
        last_attempt = first_attempt + max_attempts - 1

        while True:
            outcome = await self._run_attempt(day, attempt, last_failure, accepted_meals, conversation)
            state = next_state(outcome, last_attempt)

            if state is DayState.ACCEPTED:
                logger.info(f"✅ Day {day} accepted on attempt {attempt}")
                return DayResult(day=day, meals=outcome.meals, attempts=attempt)

            last_failure = outcome.failure
            if state is DayState.FAILED:
                logger.error(f"❌ Day {day} failed after {attempt} attempt(s): {last_failure}")
                raise ExhaustedRetriesError(day, attempt, last_failure)

            delay = backoff_seconds(attempt)
            logger.warning(f"⚠️ Day {day} attempt {attempt}/{last_attempt} rejected, "
                           f"retrying in {delay:.1f}s: {last_failure}")
            await asyncio.sleep(delay)
            attempt += 1

    async def _run_attempt(
        self,
        day: int,
        attempt: int,
        last_failure: Optional[str],
        accepted_meals: List[Meal],
        conversation: Optional[ConversationState],
    ) -> AttemptOutcome:
        temperature = attempt_temperature(attempt)

        # DRAFTING
        prompt = build_day_prompt(
            day, self.profile, self.targets, accepted_meals, last_failure,
            include_digest=conversation is None,
        )
        if conversation is not None:
            system_prompt, messages = conversation.trimmed_for_day(day, prompt)
            conversation.record_request(day, prompt)
        else:
            system_prompt = system_prompt_for_day(day, config.GENERATION_CONFIG["full_system_prompt_days"])
            messages = [{"role": "user", "content": prompt}]

        logger.debug(f"🔍 Day {day} attempt {attempt}: temperature {temperature}, "
                     f"~{estimate_token_usage(system_prompt, *(m['content'] for m in messages))} prompt tokens")

        try:
            reply = await self.llm.chat(
                system_prompt=system_prompt,
                messages=messages,
                temperature=temperature,
                max_tokens=config.GENERATION_CONFIG["max_tokens"],
            )
            if conversation is not None:
                conversation.record_response(day, reply)
            # VALIDATING
            meals = self.validate_reply(day, reply, accepted_meals)
        except (RecoverableGenerationError, LLMServiceError) as e:
            failure = e.message
            if conversation is not None:
                conversation.record_error(day, attempt, failure)
            return AttemptOutcome(DayState.RETRYING, attempt, failure=failure, temperature=temperature)

        if conversation is not None:
            conversation.record_success(day, meals)
        return AttemptOutcome(DayState.ACCEPTED, attempt, meals=meals, temperature=temperature)

    def validate_reply(self, day: int, reply: str, accepted_meals: Sequence[Meal]) -> List[Meal]:
        """
        Parse and validate one reply for `day`.

        Raises:
            ParseError, StructuralError, DuplicateMealError,
            MacroValidationError, DietaryViolationError
        """
        meals = parse_meals(reply, default_day=day)
        self._raise_if_invalid(validate_day_structure(day, meals), day)

        self.similarity.seed(accepted_meals)
        duplicates = self.similarity.check_day(meals, accepted_meals)
        if duplicates:
            raise DuplicateMealError("Duplicate meals: " + "; ".join(duplicates), day=day)

        self._raise_if_invalid(check_day_calorie_floors(meals, self.targets), day)
        self._raise_if_invalid(check_dietary_restrictions(meals, self.profile.dietary_restrictions), day)
        self._raise_if_invalid(validate_day_macros(day, meals, self.targets), day)
        return meals

    @staticmethod
    def _raise_if_invalid(result: ValidationResult, day: int) -> None:
        if not result.valid:
            raise error_from_result(result, day=day)
