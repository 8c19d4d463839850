"""
Tests for cross-day duplicate detection.

Run: pytest tests/test_similarity_checker.py -v
"""

import pytest

from conftest import make_meal, sample_day_meals
from similarity_checker import (
    CategoricalSignature,
    SimilarityChecker,
    duplicate_reason,
    ingredient_jaccard,
    meal_fingerprint,
    names_similar,
    word_overlap,
)


class TestFingerprint:

    @pytest.mark.readonly
    def test_format(self):
        meal = make_meal(name="Chicken Bowl", protein=40.0, carbs=50, fat=12.5)
        assert meal_fingerprint(meal) == "chicken bowl_40_50_12.5"


class TestNameSimilarity:

    @pytest.mark.readonly
    def test_equal_after_normalizing(self):
        assert names_similar("Chicken & Rice!", "chicken rice")

    @pytest.mark.readonly
    def test_containment(self):
        assert names_similar("Chicken Caesar Salad", "Grilled Chicken Caesar Salad Wrap")

    @pytest.mark.readonly
    def test_word_overlap_threshold(self):
        # 3 of 4 significant words shared: 0.75
        assert word_overlap("Spicy Chicken Rice Bowl", "Smoky Chicken Rice Bowl") == pytest.approx(0.75)
        assert names_similar("Spicy Chicken Rice Bowl", "Smoky Chicken Rice Bowl")

    @pytest.mark.readonly
    def test_short_words_ignored(self):
        # words under 4 letters do not count
        assert word_overlap("Egg Hash", "Egg Tart") == 0.0
        assert not names_similar("Beef Stew", "Lamb Curry")


class TestIngredientJaccard:

    @pytest.mark.readonly
    def test_jaccard(self):
        a = make_meal(ingredients=["chicken", "rice", "broccoli", "soy sauce"])
        b = make_meal(ingredients=["Chicken", "rice", "broccoli", "garlic"])
        assert ingredient_jaccard(a, b) == pytest.approx(3 / 5)

    @pytest.mark.readonly
    def test_empty(self):
        assert ingredient_jaccard(make_meal(), make_meal(ingredients=["rice"])) == 0.0


class TestCategoricalSignature:

    @pytest.mark.readonly
    def test_detected_different_cuisines_clear_the_match(self):
        italian = make_meal(1, "lunch", "Italian Grilled Chicken Pesto Bowl",
                            ingredients=["chicken breast", "basil", "pine nuts"])
        thai = make_meal(2, "lunch", "Thai Grilled Chicken Lemongrass Bowl",
                         ingredients=["chicken breast", "lemongrass", "lime"])
        assert CategoricalSignature.of(italian).collides_with(CategoricalSignature.of(thai)) is False
        assert duplicate_reason(thai, italian) is None

    @pytest.mark.readonly
    def test_undetected_cuisine_still_collides(self):
        first = make_meal(1, "lunch", "Chicken Harvest Bowl",
                          description="Grilled chicken over greens",
                          ingredients=["chicken breast", "kale", "farro"])
        second = make_meal(3, "dinner", "Chicken Power Bowl",
                           description="Grilled chicken with roasted vegetables",
                           ingredients=["chicken breast", "quinoa", "beets"])
        reason = duplicate_reason(second, first)
        assert reason is not None
        assert "chicken-breast / dry-heat / bowl" in reason

    @pytest.mark.readonly
    def test_undetected_category_never_collides(self):
        sig = CategoricalSignature("chicken-breast", "other", "bowl", "other")
        assert not sig.collides_with(sig)


class TestDuplicateReason:

    @pytest.mark.readonly
    def test_same_day_pairs_are_skipped(self):
        a = make_meal(1, "lunch", "Chicken Rice Bowl")
        b = make_meal(1, "dinner", "Chicken Rice Bowl")
        assert duplicate_reason(b, a) is None

    @pytest.mark.readonly
    def test_similar_name_on_other_day(self):
        a = make_meal(1, "lunch", "Turkey Club Sandwich")
        b = make_meal(2, "lunch", "Turkey Club Sandwich Deluxe")
        assert "too similar in name" in duplicate_reason(b, a)

    @pytest.mark.readonly
    def test_ingredient_overlap_with_somewhat_similar_name(self):
        ingredients = ["salmon", "rice", "avocado", "cucumber", "nori"]
        a = make_meal(1, "lunch", "Salmon Avocado Hand Roll", ingredients=ingredients)
        b = make_meal(2, "lunch", "Salmon Cucumber Sushi Roll", ingredients=ingredients)
        assert word_overlap(a.name, b.name) == pytest.approx(0.5)
        assert "ingredients" in duplicate_reason(b, a)


class TestSimilarityChecker:
    """Tests for SimilarityChecker"""

    @pytest.mark.readonly
    def test_exact_fingerprint_regardless_of_day(self):
        checker = SimilarityChecker()
        original = make_meal(1, "lunch", "Chicken Rice Bowl", 40, 50, 12)
        checker.seed([original])
        repeat = make_meal(1, "dinner", "Chicken Rice Bowl", 40, 50, 12)
        reason = checker.check_meal(repeat, [original])
        assert "exact duplicate" in reason

    @pytest.mark.readonly
    def test_distinct_days_pass(self):
        checker = SimilarityChecker()
        accepted = sample_day_meals(1) + sample_day_meals(2)
        checker.seed(accepted)
        assert checker.check_day(sample_day_meals(3), accepted) == []

    @pytest.mark.readonly
    def test_check_meal_registers_fingerprint(self):
        checker = SimilarityChecker()
        meal = make_meal(2, "breakfast", "Overnight Oats")
        assert checker.check_meal(meal, []) is None
        assert meal_fingerprint(meal) in checker.fingerprints

    @pytest.mark.readonly
    def test_seed_resets_to_accepted_meals(self):
        checker = SimilarityChecker()
        rejected = make_meal(2, "lunch", "Rejected Attempt Meal")
        checker.check_meal(rejected, [])
        accepted = sample_day_meals(1)
        checker.seed(accepted)
        assert checker.fingerprints == {meal_fingerprint(m) for m in accepted}
        assert checker.check_meal(rejected, accepted) is None

    @pytest.mark.readonly
    def test_check_day_collects_every_reason(self):
        checker = SimilarityChecker()
        accepted = sample_day_meals(1)
        checker.seed(accepted)
        repeats = [
            make_meal(2, "breakfast", "Spinach Feta Omelette"),
            make_meal(2, "lunch", "Grilled Salmon Quinoa Salad Bowl"),
            make_meal(2, "dinner", "Mushroom Risotto"),
        ]
        assert len(checker.check_day(repeats, accepted)) == 2
