"""
Tests for the 5-day orchestration.

Run: pytest tests/test_plan_orchestrator.py -v
"""

from dataclasses import replace

import pytest

from conftest import FakeChatClient, day_reply, run_async, sample_day_meals, sample_plan
from meal_models import SnackItem
from plan_orchestrator import PlanOrchestrator
from planner_errors import ExhaustedRetriesError, StructuralError


def five_good_days():
    return [day_reply(sample_day_meals(day)) for day in range(1, 6)]


class TestGeneratePlan:
    """Tests for PlanOrchestrator.generate_plan()"""

    @pytest.mark.readonly
    def test_happy_path(self, profile, no_sleep):
        llm = FakeChatClient(five_good_days())
        events = []
        plan = run_async(PlanOrchestrator(llm, events.append).generate_plan(profile))

        assert len(plan.meals) == 15
        assert plan.plan_id
        assert [(m.day, m.meal_type) for m in plan.meals[:3]] == [
            (1, "breakfast"), (1, "lunch"), (1, "dinner")
        ]
        assert [e.progress for e in events] == [0, 20, 40, 60, 80, 100]
        assert events[-1].message == "Meal plan complete"
        assert len(llm.calls) == 5

    @pytest.mark.readonly
    def test_later_days_see_digest_and_compact_prompt(self, profile, no_sleep):
        llm = FakeChatClient(five_good_days())
        run_async(PlanOrchestrator(llm).generate_plan(profile))

        day3 = llm.calls[2]
        assert day3["system_prompt"] != llm.calls[0]["system_prompt"]
        digest = day3["messages"][0]["content"]
        assert digest.startswith("PREVIOUSLY GENERATED MEALS")
        assert "Day 2 dinner: Braised Lamb Shank Stew" in digest
        # most recent success pair only
        assert day3["messages"][1]["content"].startswith("Day 2 meals:")
        assert len(day3["messages"]) == 4

    @pytest.mark.readonly
    def test_plan_ids_are_fresh(self, profile, no_sleep):
        first = run_async(PlanOrchestrator(FakeChatClient(five_good_days())).generate_plan(profile))
        second = run_async(PlanOrchestrator(FakeChatClient(five_good_days())).generate_plan(profile))
        assert first.plan_id != second.plan_id

    @pytest.mark.readonly
    def test_failing_callback_is_ignored(self, profile, no_sleep):
        def explode(event):
            raise RuntimeError("ui went away")

        plan = run_async(PlanOrchestrator(FakeChatClient(five_good_days()), explode).generate_plan(profile))
        assert len(plan.meals) == 15

    @pytest.mark.readonly
    def test_corrective_retry_rescues_day(self, profile, no_sleep):
        replies = ["bad", "bad", "bad"] + five_good_days()
        llm = FakeChatClient(replies)
        plan = run_async(PlanOrchestrator(llm).generate_plan(profile))

        assert len(plan.meals) == 15
        assert len(llm.calls) == 8
        corrective_prompt = llm.calls[3]["messages"][-1]["content"]
        assert "PREVIOUS ERROR (MUST BE FIXED)" in corrective_prompt

    @pytest.mark.readonly
    def test_corrective_retry_continues_schedule(self, profile, no_sleep):
        llm = FakeChatClient(["bad", "bad", "bad"] + five_good_days())
        run_async(PlanOrchestrator(llm).generate_plan(profile))

        temperatures = [c["temperature"] for c in llm.calls[:4]]
        assert temperatures == pytest.approx([0.7, 0.5, 0.3, 0.3])
        assert [call.args[0] for call in no_sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.readonly
    def test_failed_corrective_retry_aborts_plan(self, profile, no_sleep):
        llm = FakeChatClient([day_reply(sample_day_meals(1))] + ["bad"] * 4)
        with pytest.raises(ExhaustedRetriesError) as exc:
            run_async(PlanOrchestrator(llm).generate_plan(profile))
        assert exc.value.day == 2
        assert exc.value.attempts == 4
        assert len(llm.calls) == 5

    @pytest.mark.readonly
    def test_snacks_and_favorites_attached(self, profile, no_sleep):
        profile = replace(
            profile,
            include_snacks=True,
            snacks=(SnackItem("Trail Mix", 8, 30, 17),),
            include_favorite_meals=False,
            favorite_meals=(SnackItem("Lasagna"),),
        )
        plan = run_async(PlanOrchestrator(FakeChatClient(five_good_days())).generate_plan(profile))
        assert [s.name for s in plan.snacks] == ["Trail Mix"]
        assert plan.favorite_meals == []


class TestAssemblePlan:

    @pytest.mark.readonly
    def test_incomplete_plan_raises(self, profile, targets):
        meals = sample_plan().sorted_meals()[:-1]
        with pytest.raises(StructuralError):
            PlanOrchestrator(FakeChatClient([])).assemble_plan(meals, profile, targets)

    @pytest.mark.readonly
    def test_keeps_given_plan_id(self, profile, targets):
        plan = PlanOrchestrator(FakeChatClient([])).assemble_plan(
            sample_plan().meals, profile, targets, plan_id="fixed-id"
        )
        assert plan.plan_id == "fixed-id"
