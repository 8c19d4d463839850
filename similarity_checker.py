"""
Meal Similarity Checker
=======================

Stops the generator from repeating meals across days.

Signals, cheapest first:
1. Exact fingerprint  - lowercased name + macros, flagged regardless of day
2. Name similarity    - normalized equality, containment, or >=70% overlap
                        of significant words (length > 3)
3. Ingredient overlap - names >40% similar AND ingredient Jaccard > 0.7
4. Categorical        - same protein + cooking method + dish type, unless
                        both cuisines are detected and differ

Signals 2-4 only compare meals on different days. One checker per
generation run; it is not safe to share across concurrent runs.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from meal_models import Meal
from meal_taxonomy import (
    OTHER,
    classify_cooking_method,
    classify_cuisine,
    classify_dish_type,
    classify_protein,
)
from tools.logging_utils import get_logger

logger = get_logger(__name__)

NAME_OVERLAP_THRESHOLD = 0.70
SOMEWHAT_SIMILAR_THRESHOLD = 0.40
INGREDIENT_JACCARD_THRESHOLD = 0.70
SIGNIFICANT_WORD_MIN_LENGTH = 4

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}"


def meal_fingerprint(meal: Meal) -> str:
    """`name_protein_carbs_fat` with the name lowercased."""
    return "_".join([
        meal.name.lower(),
        _format_number(meal.protein),
        _format_number(meal.carbs),
        _format_number(meal.fat),
    ])


def normalize_name(name: str) -> str:
    text = _NON_WORD.sub(" ", (name or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def significant_words(name: str) -> Set[str]:
    return {w for w in normalize_name(name).split() if len(w) >= SIGNIFICANT_WORD_MIN_LENGTH}


def word_overlap(name1: str, name2: str) -> float:
    """Shared significant words / size of the larger word set."""
    words1, words2 = significant_words(name1), significant_words(name2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / max(len(words1), len(words2))


def names_similar(name1: str, name2: str) -> bool:
    norm1, norm2 = normalize_name(name1), normalize_name(name2)
    if not norm1 or not norm2:
        return False
    if norm1 == norm2 or norm1 in norm2 or norm2 in norm1:
        return True
    return word_overlap(name1, name2) >= NAME_OVERLAP_THRESHOLD


def ingredient_jaccard(meal1: Meal, meal2: Meal) -> float:
    set1 = {normalize_name(n) for n in meal1.ingredient_names} - {""}
    set2 = {normalize_name(n) for n in meal2.ingredient_names} - {""}
    if not set1 or not set2:
        return 0.0
    return len(set1 & set2) / len(set1 | set2)


@dataclass(frozen=True)
class CategoricalSignature:
    protein: str
    cooking_method: str
    dish_type: str
    cuisine: str

    @classmethod
    def of(cls, meal: Meal) -> "CategoricalSignature":
        fields = (meal.name, meal.ingredient_names, meal.description)
        return cls(
            protein=classify_protein(*fields),
            cooking_method=classify_cooking_method(*fields),
            dish_type=classify_dish_type(*fields),
            cuisine=classify_cuisine(*fields),
        )

    def collides_with(self, other: "CategoricalSignature") -> bool:
        structural = (
            (self.protein, self.cooking_method, self.dish_type)
            == (other.protein, other.cooking_method, other.dish_type)
        )
        if not structural or OTHER in (self.protein, self.cooking_method, self.dish_type):
            return False
        # Only two confidently detected, different cuisines clear the match
        if self.cuisine != OTHER and other.cuisine != OTHER and self.cuisine != other.cuisine:
            return False
        return True


def duplicate_reason(candidate: Meal, previous: Meal) -> Optional[str]:
    """
    Compare two meals from different days.

    Returns:
        Human-readable reason when the candidate duplicates `previous`,
        None otherwise (also None for same-day pairs)
    """
    if candidate.day == previous.day:
        return None

    if names_similar(candidate.name, previous.name):
        return (f"'{candidate.name}' is too similar in name to day {previous.day} "
                f"{previous.meal_type} '{previous.name}'")

    overlap = word_overlap(candidate.name, previous.name)
    if overlap > SOMEWHAT_SIMILAR_THRESHOLD:
        jaccard = ingredient_jaccard(candidate, previous)
        if jaccard > INGREDIENT_JACCARD_THRESHOLD:
            return (f"'{candidate.name}' shares {jaccard:.0%} of its ingredients with day "
                    f"{previous.day} {previous.meal_type} '{previous.name}'")

    sig_new, sig_old = CategoricalSignature.of(candidate), CategoricalSignature.of(previous)
    if sig_new.collides_with(sig_old):
        return (f"'{candidate.name}' repeats the {sig_new.protein} / {sig_new.cooking_method} / "
                f"{sig_new.dish_type} combination of day {previous.day} {previous.meal_type} "
                f"'{previous.name}'")
    return None


class SimilarityChecker:
    """
    Duplicate detector holding the fingerprints of accepted meals.

    Usage:
        checker = SimilarityChecker()
        checker.seed(accepted_meals)
        reasons = checker.check_day(proposed_meals, accepted_meals)
    """

    def __init__(self):
        self._fingerprints: Dict[str, Meal] = {}

    @property
    def fingerprints(self) -> Set[str]:
        return set(self._fingerprints)

    def seed(self, accepted_meals: Iterable[Meal]) -> None:
        """Reset the fingerprint set to exactly the accepted meals."""
        self._fingerprints = {}
        for meal in accepted_meals:
            self._fingerprints.setdefault(meal_fingerprint(meal), meal)

    def check_meal(self, meal: Meal, previous_meals: Iterable[Meal]) -> Optional[str]:
        """
        Check one meal and register its fingerprint when it is not a duplicate.

        Returns:
            Duplicate reason, or None
        """
        fingerprint = meal_fingerprint(meal)
        seen = self._fingerprints.get(fingerprint)
        if seen is not None:
            return (f"'{meal.name}' is an exact duplicate of day {seen.day} "
                    f"{seen.meal_type} '{seen.name}' (same name and macros)")

        for previous in previous_meals:
            reason = duplicate_reason(meal, previous)
            if reason:
                return reason

        self._fingerprints[fingerprint] = meal
        return None

    def check_day(self, meals: Iterable[Meal], previous_meals: Iterable[Meal]) -> List[str]:
        """Check every meal proposed for a day; returns all duplicate reasons."""
        previous = list(previous_meals)
        reasons = []
        for meal in meals:
            reason = self.check_meal(meal, previous)
            if reason:
                logger.debug(f"🔍 Duplicate rejected: {reason}")
                reasons.append(reason)
        return reasons
