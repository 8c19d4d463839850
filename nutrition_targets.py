"""
Nutrition Target Calculator
===========================

Derives per-day and per-meal calorie / macro targets and tolerance bands
from a UserProfile. Created once per generation run, read-only afterwards.

    targets = calculate_nutrition_targets(profile)
    targets.protein_g              # 200 for 2000 kcal @ 40/30/30
    targets.meal_calorie_bounds("breakfast")   # (500, 600, 700)
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from meal_models import KCAL_PER_GRAM, MEAL_TYPES, UserProfile
from tools.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_MACRO_SPLIT = (35, 35, 30)

# Fractions of the daily calorie target (min, target, max)
MEAL_CALORIE_FRACTIONS = {
    "breakfast": (0.25, 0.30, 0.35),
    "lunch": (0.30, 0.35, 0.40),
    "dinner": (0.30, 0.35, 0.40),
}

BASE_TOLERANCE = 0.20
TOLERANCE_WIDENING_RATE = 0.02
TOLERANCE_WIDENING_CAP = 0.05

_SPLIT_NUMBERS = re.compile(r"\d+(?:\.\d+)?")
_FIVE_TWO_PATTERN = re.compile(r"(weekdays?|weekends?)\s*[:=]\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for display values (42.5 -> 43)."""
    return int(math.floor(value + 0.5))


# =============================================================================
# PARSING
# =============================================================================

def parse_macro_split(value: Any) -> Tuple[float, float, float]:
    """
    Read a protein/carbs/fat percentage split.

    Accepts "40/30/30", "40-30-30", '{"type": "40/30/30"}',
    {"type": "40/30/30"}, {"protein": 40, "carbs": 30, "fat": 30} and
    (40, 30, 30). Anything else falls back to 35/35/30.

    Returns:
        (protein %, carbs %, fat %)
    """
    if value is None or value == "":
        return DEFAULT_MACRO_SPLIT

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                return parse_macro_split(json.loads(text))
            except json.JSONDecodeError:
                logger.warning(f"⚠️ Unparseable macro split JSON {value!r}, using 35/35/30")
                return DEFAULT_MACRO_SPLIT
        numbers = [float(n) for n in _SPLIT_NUMBERS.findall(text)]
        return _split_or_default(numbers, value)

    if isinstance(value, dict):
        if "type" in value:
            return parse_macro_split(value["type"])
        try:
            numbers = [float(value[k]) for k in ("protein", "carbs", "fat")]
        except (KeyError, TypeError, ValueError):
            numbers = []
        return _split_or_default(numbers, value)

    if isinstance(value, (list, tuple)):
        try:
            numbers = [float(v) for v in value]
        except (TypeError, ValueError):
            numbers = []
        return _split_or_default(numbers, value)

    return _split_or_default([], value)


def _split_or_default(numbers, raw) -> Tuple[float, float, float]:
    if len(numbers) != 3 or sum(numbers) <= 0:
        logger.warning(f"⚠️ Unparseable macro split {raw!r}, using 35/35/30")
        return DEFAULT_MACRO_SPLIT
    protein, carbs, fat = (int(n) if n.is_integer() else n for n in numbers)
    return protein, carbs, fat


def parse_five_two_split(value: Optional[str]) -> Tuple[float, float]:
    """
    Parse the stored "weekdays:2000 weekends:2200" calorie descriptor.

    A missing weekend value falls back to the weekday value.

    Returns:
        (weekday calories, weekend calories); (0, 0) when unparseable
    """
    if not value:
        return 0, 0
    found = {}
    for label, number in _FIVE_TWO_PATTERN.findall(str(value)):
        key = "weekend" if label.lower().startswith("weekend") else "weekday"
        found[key] = float(number)
    weekday = found.get("weekday", 0)
    weekend = found.get("weekend", weekday)
    return weekday, weekend


def calculate_tolerance(daily_calories: float) -> float:
    """Base 20% widened by (calories/2000)*2%, widening capped at 5%."""
    widening = min((daily_calories / 2000) * TOLERANCE_WIDENING_RATE, TOLERANCE_WIDENING_CAP)
    return BASE_TOLERANCE + max(widening, 0)


# =============================================================================
# TARGETS
# =============================================================================

@dataclass(frozen=True)
class NutritionTargets:
    daily_calories: float = 0
    protein_g: int = 0
    carbs_g: int = 0
    fat_g: int = 0
    macro_split: Tuple[float, float, float] = DEFAULT_MACRO_SPLIT
    tolerance: Dict[str, float] = field(default_factory=dict)

    def target_for(self, macro: str) -> float:
        return {
            "calories": self.daily_calories,
            "protein": self.protein_g,
            "carbs": self.carbs_g,
            "fat": self.fat_g,
        }[macro]

    def tolerance_for(self, macro: str) -> float:
        return self.tolerance.get(macro, BASE_TOLERANCE)

    def meal_calorie_bounds(self, meal_type: str) -> Tuple[int, int, int]:
        """(minimum, target, maximum) calories for a meal type."""
        low, mid, high = MEAL_CALORIE_FRACTIONS[meal_type]
        return (
            round_half_up(self.daily_calories * low),
            round_half_up(self.daily_calories * mid),
            round_half_up(self.daily_calories * high),
        )

    def meal_calorie_floor(self, meal_type: str, leniency: float = 0.75) -> float:
        """Lenient per-meal floor: 75% of the meal type's minimum fraction."""
        return self.daily_calories * MEAL_CALORIE_FRACTIONS[meal_type][0] * leniency

    def meal_minimum_macros(self, meal_type: str) -> Dict[str, int]:
        """Minimum grams per macro for one meal: its minimum calories split by the macro split."""
        return self._macros_for(self.meal_calorie_bounds(meal_type)[0])

    def meal_target_macros(self, meal_type: str) -> Dict[str, int]:
        """Grams per macro for one meal at its target fraction."""
        return self._macros_for(self.daily_calories * MEAL_CALORIE_FRACTIONS[meal_type][1])

    def _macros_for(self, calories: float) -> Dict[str, int]:
        protein_pct, carbs_pct, fat_pct = self.macro_split
        return {
            "protein": round_half_up(calories * protein_pct / 100 / KCAL_PER_GRAM["protein"]),
            "carbs": round_half_up(calories * carbs_pct / 100 / KCAL_PER_GRAM["carbs"]),
            "fat": round_half_up(calories * fat_pct / 100 / KCAL_PER_GRAM["fat"]),
        }


def calculate_nutrition_targets(profile: Optional[UserProfile]) -> NutritionTargets:
    """
    Derive NutritionTargets from a UserProfile.

    Gram targets use the weekday calorie target. Absent input degrades to
    zero targets instead of raising.

    Args:
        profile: UserProfile (may be None)

    Returns:
        NutritionTargets
    """
    daily = float(profile.weekday_calories or 0) if profile else 0
    split = parse_macro_split(profile.macro_split if profile else None)
    if daily <= 0:
        logger.warning("⚠️ No weekday calorie target on profile, targets degrade to zero")
        daily = 0

    protein_pct, carbs_pct, fat_pct = split
    tolerance = calculate_tolerance(daily)
    targets = NutritionTargets(
        daily_calories=int(daily) if float(daily).is_integer() else daily,
        protein_g=round_half_up(daily * protein_pct / 100 / KCAL_PER_GRAM["protein"]),
        carbs_g=round_half_up(daily * carbs_pct / 100 / KCAL_PER_GRAM["carbs"]),
        fat_g=round_half_up(daily * fat_pct / 100 / KCAL_PER_GRAM["fat"]),
        macro_split=split,
        tolerance={macro: tolerance for macro in ("calories", "protein", "carbs", "fat")},
    )
    logger.debug(
        f"🔍 Targets: {targets.daily_calories} kcal, P{targets.protein_g}g "
        f"C{targets.carbs_g}g F{targets.fat_g}g, tolerance ±{tolerance:.0%}"
    )
    return targets


def describe_meal_targets(targets: NutritionTargets) -> Dict[str, Dict[str, Any]]:
    """Per-meal-type bounds and minimum macros, keyed by meal type."""
    described = {}
    for meal_type in MEAL_TYPES:
        minimum, target, maximum = targets.meal_calorie_bounds(meal_type)
        described[meal_type] = {
            "min_calories": minimum,
            "target_calories": target,
            "max_calories": maximum,
            "min_macros": targets.meal_minimum_macros(meal_type),
            "target_macros": targets.meal_target_macros(meal_type),
        }
    return described
