"""
Macro Validator
===============

Numeric and structural checks for generated meals.

Day level (run on every attempt):
- validate_day_structure: one breakfast, lunch and dinner for the day
- check_meal_calorie_floor: each meal clears 75% of its meal-type minimum
- check_dietary_restrictions: no restricted keyword in any ingredient
- validate_day_macros: calories/protein/carbs/fat inside the tolerance band

Plan level (run once the plan is assembled, and per changed day on revision):
- validate_meal_plan: 15-meal coverage, floors, dietary, 70-130% day range
- validate_changed_days: structure, dietary and macros for selected days only

Every check returns a ValidationResult; nothing here raises for a bad plan.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from meal_models import (
    MACROS,
    MEAL_TYPES,
    PLAN_DAYS,
    Meal,
    MealPlan,
    ValidationResult,
    derive_calories,
)
from meal_taxonomy import find_restricted_keyword
from nutrition_targets import NutritionTargets, round_half_up
from tools.logging_utils import get_logger

logger = get_logger(__name__)

DAY_RANGE_LOW = 0.70
DAY_RANGE_HIGH = 1.30
MEAL_FLOOR_LENIENCY = 0.75

# Shares of a meal's target calories used in floor feedback
FLOOR_MACRO_SHARES = {"protein": (0.25, 4), "carbs": (0.40, 4), "fat": (0.35, 9)}

MACRO_UNITS = {"calories": "kcal", "protein": "g", "carbs": "g", "fat": "g"}


def calculate_calories(protein: float, carbs: float, fat: float) -> float:
    """Derived calories: protein*4 + carbs*4 + fat*9, unrounded."""
    return derive_calories(protein, carbs, fat)


def day_totals(meals: Iterable[Meal]) -> Dict[str, float]:
    """Aggregate protein/carbs/fat over meals and derive calories."""
    protein = carbs = fat = 0
    for meal in meals:
        protein += meal.protein
        carbs += meal.carbs
        fat += meal.fat
    return {
        "calories": calculate_calories(protein, carbs, fat),
        "protein": protein,
        "carbs": carbs,
        "fat": fat,
    }


def _suggestion(macro: str, actual: float, target: float) -> str:
    gap = round_half_up(abs(target - actual))
    unit = MACRO_UNITS[macro]
    if macro == "calories":
        verb = "add" if actual < target else "cut"
        return f"{verb} ~{gap} {unit} across the day"
    verb = "increase" if actual < target else "decrease"
    return f"{verb} {macro} by ~{gap}{unit}"


# =============================================================================
# DAY LEVEL
# =============================================================================

def validate_day_macros(day: int, meals: Sequence[Meal], targets: NutritionTargets) -> ValidationResult:
    """
    Check a day's aggregate macros against the tolerance band.

    Each of calories, protein, carbs and fat must satisfy
    target*(1-tol) <= actual <= target*(1+tol). Any single failure
    invalidates the day.

    Args:
        day: Plan day (1..5)
        meals: The day's three meals
        targets: NutritionTargets for the run

    Returns:
        ValidationResult with per-macro deviation percentages and, when
        invalid, suggestions such as "increase protein by ~12g"
    """
    totals = day_totals(meals)
    deviations: Dict[str, float] = {}
    failures: List[str] = []
    suggestions: List[str] = []

    for macro in MACROS:
        target = targets.target_for(macro)
        tolerance = targets.tolerance_for(macro)
        actual = totals[macro]
        deviations[macro] = round((actual - target) / target * 100, 1) if target else 0.0

        low = target * (1 - tolerance)
        high = target * (1 + tolerance)
        if low <= actual <= high:
            continue

        unit = MACRO_UNITS[macro]
        failures.append(
            f"{macro} {round_half_up(actual)}{unit} vs target {round_half_up(target)}{unit} "
            f"({deviations[macro]:+.1f}%, allowed ±{tolerance * 100:.0f}%)"
        )
        suggestions.append(_suggestion(macro, actual, target))

    if not failures:
        return ValidationResult.ok(deviations)

    reason = f"Day {day} macros out of range: " + "; ".join(failures)
    reason += ". Suggestions: " + "; ".join(suggestions)
    return ValidationResult.failed("macro", reason, deviations=deviations, suggestions=suggestions)


def validate_day_structure(day: int, meals: Sequence[Meal]) -> ValidationResult:
    """Exactly one breakfast, lunch and dinner, all tagged with `day`."""
    wrong_day = [m for m in meals if m.day != day]
    if wrong_day:
        labels = ", ".join(f"'{m.name}' (day {m.day})" for m in wrong_day)
        return ValidationResult.failed(
            "structural", f"Expected only day {day} meals, got {labels}"
        )

    types = [m.meal_type for m in meals]
    missing = [t for t in MEAL_TYPES if t not in types]
    extra = [t for t in types if t not in MEAL_TYPES]
    repeated = sorted({t for t in types if t in MEAL_TYPES and types.count(t) > 1})

    problems = []
    if missing:
        problems.append(f"missing {', '.join(missing)}")
    if repeated:
        problems.append(f"more than one {', '.join(repeated)}")
    if extra:
        problems.append(f"unknown meal type(s) {', '.join(repr(t) for t in extra)}")
    if problems:
        return ValidationResult.failed(
            "structural",
            f"Day {day} must have exactly one breakfast, lunch and dinner: " + "; ".join(problems),
        )
    return ValidationResult.ok()


def check_meal_calorie_floor(meal: Meal, targets: NutritionTargets) -> ValidationResult:
    """
    Lenient per-meal floor: 75% of the meal type's minimum share of the day.

    Failure text names the shortfall, the macros needed at the meal's target
    share, and remediation hints (egg whites, skim / low-fat dairy).
    """
    if meal.meal_type not in MEAL_TYPES or targets.daily_calories <= 0:
        return ValidationResult.ok()

    calories = meal.calories
    floor = targets.meal_calorie_floor(meal.meal_type, MEAL_FLOOR_LENIENCY)
    if calories >= floor:
        return ValidationResult.ok()

    target_calories = targets.meal_calorie_bounds(meal.meal_type)[1]
    needed = {
        macro: round_half_up(target_calories * share / kcal)
        for macro, (share, kcal) in FLOOR_MACRO_SHARES.items()
    }

    feedback = []
    if meal.protein < needed["protein"] * 0.8:
        feedback.append(f"Increase protein (currently {meal.protein}g, need {needed['protein']}g).")
    if meal.fat < needed["fat"] * 0.8:
        feedback.append(f"Increase fat (currently {meal.fat}g, need {needed['fat']}g) "
                        f"by adding oils, nuts, or avocado.")
    if meal.carbs < needed["carbs"] * 0.8:
        feedback.append(f"Increase carbs (currently {meal.carbs}g, need {needed['carbs']}g).")

    lowered = meal.name.lower()
    if "egg white" in lowered:
        feedback.append("Replace egg whites with whole eggs for more calories.")
    if "skim" in lowered or "low-fat" in lowered or "low fat" in lowered:
        feedback.append("Use full-fat dairy instead of skim or low-fat options.")

    reason = (
        f'Meal "{meal.name}" (Day {meal.day} {meal.meal_type}) has only {round_half_up(calories)} '
        f"calories, which is below the minimum of {round_half_up(floor)} calories. "
        f"This meal needs at least {needed['protein']}g protein, {needed['carbs']}g carbs, "
        f"and {needed['fat']}g fat to meet calorie requirements."
    )
    if feedback:
        reason += " " + " ".join(feedback)
    return ValidationResult.failed("macro", reason, suggestions=feedback)


def check_day_calorie_floors(meals: Iterable[Meal], targets: NutritionTargets) -> ValidationResult:
    for meal in meals:
        result = check_meal_calorie_floor(meal, targets)
        if not result.valid:
            return result
    return ValidationResult.ok()


def check_dietary_restrictions(meals: Iterable[Meal], restrictions: Iterable[str]) -> ValidationResult:
    """
    Case-insensitive substring search of every ingredient name against the
    dietary keyword table. Unknown restrictions are ignored.
    """
    restrictions = [r for r in (restrictions or ()) if isinstance(r, str) and r.strip()]
    if not restrictions:
        return ValidationResult.ok()

    for meal in meals:
        for ingredient in meal.ingredient_names:
            for restriction in restrictions:
                keyword = find_restricted_keyword(ingredient, restriction)
                if keyword:
                    return ValidationResult.failed(
                        "dietary",
                        f'Meal "{meal.name}" (Day {meal.day} {meal.meal_type}) contains '
                        f'"{ingredient}" which violates the {restriction} restriction '
                        f'(matched "{keyword}")',
                    )
    return ValidationResult.ok()


def check_day_calorie_range(day: int, meals: Sequence[Meal], targets: NutritionTargets) -> ValidationResult:
    """Day total must land within 70%-130% of the daily target."""
    if targets.daily_calories <= 0:
        return ValidationResult.ok()

    total = day_totals(meals)["calories"]
    low = targets.daily_calories * DAY_RANGE_LOW
    high = targets.daily_calories * DAY_RANGE_HIGH
    if low <= total <= high:
        return ValidationResult.ok()

    breakdown = "; ".join(
        f"{m.meal_type}: {m.name} = {round_half_up(m.calories)} cal "
        f"(P{m.protein}g C{m.carbs}g F{m.fat}g)"
        for m in meals
    )
    direction = "below" if total < low else "above"
    reason = (
        f"Day {day} has {round_half_up(total)} calories, {direction} the acceptable range of "
        f"{round_half_up(low)}-{round_half_up(high)} calories (target {targets.daily_calories}). "
        f"Meal breakdown: {breakdown}"
    )
    return ValidationResult.failed("macro", reason)


# =============================================================================
# PLAN LEVEL
# =============================================================================

def validate_plan_coverage(plan: MealPlan, days: Optional[Iterable[int]] = None) -> ValidationResult:
    """Exactly one meal per (day, meal type) for the given days (default 1..5)."""
    check_all = days is None
    days = sorted(set(days)) if days is not None else list(range(1, PLAN_DAYS + 1))

    counts: Dict[tuple, int] = {}
    for meal in plan.meals:
        counts[meal.key] = counts.get(meal.key, 0) + 1

    if check_all and len(plan.meals) != PLAN_DAYS * len(MEAL_TYPES):
        missing = [f"Day {d} {t}" for d in days for t in MEAL_TYPES if (d, t) not in counts]
        detail = f"; missing: {', '.join(missing)}" if missing else ""
        return ValidationResult.failed(
            "structural",
            f"Incomplete meal plan: expected {PLAN_DAYS * len(MEAL_TYPES)} meals, "
            f"got {len(plan.meals)}{detail}",
        )

    for day in days:
        for meal_type in MEAL_TYPES:
            count = counts.get((day, meal_type), 0)
            if count == 0:
                return ValidationResult.failed("structural", f"Missing meal: Day {day} {meal_type}")
            if count > 1:
                return ValidationResult.failed(
                    "structural", f"Duplicate entries for Day {day} {meal_type} ({count})"
                )
    return ValidationResult.ok()


def validate_meal_plan(
    plan: MealPlan,
    targets: NutritionTargets,
    restrictions: Iterable[str] = (),
) -> ValidationResult:
    """
    Structural validation of an assembled plan.

    Order: coverage, per-meal floors, dietary keywords, day calorie ranges.
    The first failing check is returned.
    """
    result = validate_plan_coverage(plan)
    if not result.valid:
        return result

    meals = plan.sorted_meals()
    for check in (
        lambda: check_day_calorie_floors(meals, targets),
        lambda: check_dietary_restrictions(meals, restrictions),
    ):
        result = check()
        if not result.valid:
            return result

    for day in range(1, PLAN_DAYS + 1):
        result = check_day_calorie_range(day, plan.meals_for_day(day), targets)
        if not result.valid:
            return result

    logger.debug(f"🔍 Plan {plan.plan_id} passed structural validation")
    return ValidationResult.ok()


def validate_changed_days(
    plan: MealPlan,
    days: Iterable[int],
    targets: NutritionTargets,
    restrictions: Iterable[str] = (),
) -> ValidationResult:
    """
    Re-validate only `days` of a revised plan: plan shape, day structure,
    dietary keywords and day macros. Meals on other days are never looked at.
    """
    days = sorted(set(days))
    expected = PLAN_DAYS * len(MEAL_TYPES)
    unknown = [m for m in plan.meals if m.meal_type not in MEAL_TYPES or not 1 <= m.day <= PLAN_DAYS]
    if unknown:
        labels = ", ".join(f"'{m.name}' (day {m.day} {m.meal_type})" for m in unknown)
        return ValidationResult.failed(
            "structural",
            f"Revised plan may only hold breakfast, lunch and dinner for days 1-{PLAN_DAYS}; got {labels}",
        )
    if len(plan.meals) != expected:
        return ValidationResult.failed(
            "structural", f"Revised plan must keep {expected} meals, got {len(plan.meals)}"
        )

    result = validate_plan_coverage(plan, days)
    if not result.valid:
        return result

    for day in days:
        meals = plan.meals_for_day(day)
        result = validate_day_structure(day, meals)
        if not result.valid:
            return result
        result = check_dietary_restrictions(meals, restrictions)
        if not result.valid:
            return result
        result = validate_day_macros(day, meals, targets)
        if not result.valid:
            return result
    return ValidationResult.ok()
