"""
Meal Plan Service
=================

Glue between the persistence collaborator and the generation pipeline:

    store = MyMealPlanStore(...)          # implements utils.plan_records.MealPlanStore
    llm = get_chat_client()

    plan = await generate_meal_plan_for_user(store, llm, user_id, conversation_id)
    plan = await revise_meal_plan_for_user(store, llm, user_id, plan.plan_id,
                                           [{"day": 2, "mealType": "lunch", "changes": "no fish"}])

Nothing is stored unless the pipeline succeeds.
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from meal_models import MealPlan, RevisionRequest, SnackItem, UserProfile
from nutrition_targets import parse_five_two_split
from plan_orchestrator import PlanOrchestrator, ProgressCallback
from planner_errors import ProfileError
from tools.logging_utils import get_logger
from utils.plan_records import MealPlanStore, flatten_meal_plan, unflatten_meal_plan

logger = get_logger(__name__)

# Offered when the user wants snacks but has not named any
DEFAULT_SNACKS = (
    SnackItem(name="Apple with Almond Butter", protein=7, carbs=31, fat=16),
    SnackItem(name="Protein Bar", protein=20, carbs=24, fat=8),
    SnackItem(name="Trail Mix", protein=8, carbs=30, fat=17),
    SnackItem(name="Protein Shake", protein=32, carbs=45, fat=7),
)
_DEFAULT_SNACKS_BY_NAME = {s.name.lower(): s for s in DEFAULT_SNACKS}


# =============================================================================
# PROFILE LOADING
# =============================================================================

def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return bool(value)


def _as_set(value: Any) -> frozenset:
    """Restrictions / preferences arrive as a list, a JSON list string or a comma string."""
    if not value:
        return frozenset()
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                value = text.strip("[]").split(",")
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple, set, frozenset)):
        value = [value]
    return frozenset(
        str(v).strip().strip('"').lower() for v in value
        if str(v).strip() and str(v).strip().lower() not in ("none", "null")
    )


def _named_item(value: Any) -> Optional[SnackItem]:
    """A stored snack / favorite: either a bare name or a dict with macros."""
    if not value:
        return None
    if isinstance(value, dict):
        item = SnackItem.from_dict(value)
        return item if item.name else None
    name = str(value).strip()
    return _DEFAULT_SNACKS_BY_NAME.get(name.lower(), SnackItem(name=name))


def _collect_items(preferences: Dict[str, Any], list_key: str, prefix: str) -> List[SnackItem]:
    raw = preferences.get(list_key)
    if not isinstance(raw, (list, tuple)):
        raw = [preferences.get(f"{prefix}_1"), preferences.get(f"{prefix}_2")]
    return [item for item in (_named_item(v) for v in raw) if item is not None]


def profile_from_user_data(user_data: Dict[str, Any]) -> UserProfile:
    """
    Build a UserProfile from the store's user data bundle.

    Args:
        user_data: {metricsAndGoals, dietAndMealPreferences, calorieCalculations, ...}

    Returns:
        UserProfile

    Raises:
        ProfileError: No usable calorie target in calorieCalculations
    """
    metrics = user_data.get("metricsAndGoals") or {}
    preferences = user_data.get("dietAndMealPreferences") or {}
    calories = user_data.get("calorieCalculations") or {}

    weekday, weekend = parse_five_two_split(calories.get("five_two_split"))
    if weekday <= 0:
        raise ProfileError(
            "No calorie data found for user; complete the calorie calculation first",
            details={"five_two_split": calories.get("five_two_split")},
        )

    try:
        portion_count = max(int(preferences.get("meal_portion_people_count") or 1), 1)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ Bad portion count {preferences.get('meal_portion_people_count')!r}, using 1")
        portion_count = 1

    include_snacks = _as_bool(preferences.get("include_snacks"))
    snacks = _collect_items(preferences, "snacks", "snack") if include_snacks else []
    if include_snacks and not snacks:
        logger.info("ℹ️ Snacks requested but none stored, using the default snack list")
        snacks = list(DEFAULT_SNACKS)

    include_favorites = _as_bool(preferences.get("include_favorite_meals"))
    favorites = _collect_items(preferences, "favorite_meals", "favorite_meal") if include_favorites else []

    return UserProfile(
        goal=str(metrics.get("health_fitness_goal") or metrics.get("goal") or "").strip(),
        dietary_restrictions=_as_set(preferences.get("dietary_restrictions")),
        dietary_preferences=_as_set(preferences.get("dietary_preferences")),
        portion_count=portion_count,
        weekday_calories=weekday,
        weekend_calories=weekend,
        macro_split=calories.get("macronutrient_split"),
        include_snacks=include_snacks,
        include_favorite_meals=include_favorites,
        snacks=tuple(snacks),
        favorite_meals=tuple(favorites),
    )


# =============================================================================
# GENERATE / REVISE
# =============================================================================

async def generate_meal_plan_for_user(
    store: MealPlanStore,
    llm,
    user_id: str,
    conversation_id: Optional[str] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> MealPlan:
    """
    Load the user's profile, generate a 5-day plan and store it as a draft.

    Raises:
        ProfileError: User data has no calorie target
        ExhaustedRetriesError: Generation failed; nothing is stored
    """
    user_data = await store.get_all_user_data(user_id, conversation_id)
    profile = profile_from_user_data(user_data)
    logger.info(f"🚀 Generating meal plan for user {user_id}")

    plan = await PlanOrchestrator(llm, progress_callback).generate_plan(profile)

    record = flatten_meal_plan(plan, status="draft", is_initial_plan=True)
    await store.store_meal_plan(user_id, record, conversation_id)
    logger.info(f"💾 Stored meal plan {plan.plan_id} for user {user_id}")
    return plan


async def revise_meal_plan_for_user(
    store: MealPlanStore,
    llm,
    user_id: str,
    plan_id: str,
    requests: Sequence[Union[RevisionRequest, Dict[str, Any]]],
    conversation_id: Optional[str] = None,
) -> MealPlan:
    """
    Apply change requests to a stored plan and store the revision.

    Args:
        requests: RevisionRequest objects or dicts with day, mealType, changes

    Raises:
        LookupError: No stored plan with that id
        ExhaustedRetriesError: Revision failed; the stored plan is unchanged
    """
    record = await store.get_meal_plan_by_id(plan_id)
    if not record:
        raise LookupError(f"Meal plan not found: {plan_id}")

    user_data = await store.get_all_user_data(user_id, conversation_id)
    profile = profile_from_user_data(user_data)
    plan = unflatten_meal_plan(record)
    if not plan.plan_id:
        plan.plan_id = plan_id

    revised = await PlanOrchestrator(llm).revise_plan(plan, list(_as_requests(requests)), profile)

    await store.store_meal_plan(
        user_id,
        flatten_meal_plan(revised, status="draft", is_initial_plan=False),
        conversation_id,
    )
    logger.info(f"💾 Stored revised meal plan {revised.plan_id} for user {user_id}")
    return revised


def _as_requests(requests: Iterable[Union[RevisionRequest, Dict[str, Any]]]) -> Iterable[RevisionRequest]:
    for request in requests:
        yield request if isinstance(request, RevisionRequest) else RevisionRequest.from_dict(request)
