"""Tests for taskspine.core.scheduling.policies and the orchestrator."""

from datetime import datetime, timedelta

import pytest

from taskspine.core.errors import InvalidConfigurationError, NoPoliciesRegisteredError
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.scheduling.policies import (
    POLICY_NAMES,
    BatchPolicy,
    DeadlinePolicy,
    FirstInFirstOutPolicy,
    IdlePolicy,
    NicePolicy,
    RoundRobinPolicy,
    SchedulePolicy,
    default_policies,
)
from taskspine.core.tasks.models import MIN_PRIORITY, NullTask


def as_map(*tasks):
    return {task.name: task for task in tasks}


# ── First In First Out ───────────────────────────────────────────────────


class TestFirstInFirstOut:
    def test_higher_priority_already_first_is_kept(self):
        tasks = as_map(NullTask("app", priority=2), NullTask("foo", priority=1))
        assert list(FirstInFirstOutPolicy().sort(tasks)) == ["app", "foo"]

    def test_higher_priority_moves_first(self):
        tasks = as_map(NullTask("foo", priority=1), NullTask("app", priority=2))
        assert list(FirstInFirstOutPolicy().sort(tasks)) == ["app", "foo"]

    def test_zero_priority_keeps_its_slot(self):
        tasks = as_map(NullTask("low", priority=1), NullTask("plain"), NullTask("high", priority=9))
        assert list(FirstInFirstOutPolicy().sort(tasks)) == ["high", "plain", "low"]

    def test_all_zero_is_insertion_order(self):
        tasks = as_map(NullTask("c"), NullTask("a"), NullTask("b"))
        assert list(FirstInFirstOutPolicy().sort(tasks)) == ["c", "a", "b"]


# ── Deadline ─────────────────────────────────────────────────────────────


class TestDeadline:
    def test_earliest_deadline_first(self, clock):
        now = clock.now()
        late = NullTask("late", arrival_time=now, execution_relative_deadline=timedelta(days=3))
        early = NullTask("early", arrival_time=now, execution_relative_deadline=timedelta(days=2))

        ordered = DeadlinePolicy(clock).sort(as_map(late, early))

        assert list(ordered) == ["early", "late"]
        assert early.execution_absolute_deadline == timedelta(days=2)

    def test_absolute_deadline_shrinks_with_time(self, clock):
        task = NullTask("a", arrival_time=clock.now(), execution_relative_deadline=timedelta(hours=1))
        clock.advance(600)
        DeadlinePolicy(clock).sort(as_map(task))
        assert task.execution_absolute_deadline == timedelta(minutes=50)

    def test_tasks_without_deadline_last(self, clock):
        none = NullTask("none")
        some = NullTask("some", arrival_time=clock.now(), execution_relative_deadline=timedelta(days=9))
        assert list(DeadlinePolicy(clock).sort(as_map(none, some))) == ["some", "none"]

    def test_naive_arrival_time_sorted_with_aware_ones(self, clock):
        naive = NullTask("naive", arrival_time=datetime(2024, 1, 1), execution_relative_deadline=timedelta(days=3))
        aware = NullTask("aware", arrival_time=clock.now(), execution_relative_deadline=timedelta(days=2))

        assert list(DeadlinePolicy(clock).sort(as_map(naive, aware))) == ["aware", "naive"]


# ── Batch ────────────────────────────────────────────────────────────────


class TestBatch:
    def test_priorities_decremented(self):
        first, second = NullTask("a", priority=2), NullTask("b", priority=2)
        BatchPolicy().sort(as_map(first, second))
        assert first.priority == 1
        assert second.priority == 1

    def test_decrement_is_cumulative(self):
        task = NullTask("a", priority=2)
        policy = BatchPolicy()
        policy.sort(as_map(task))
        policy.sort(as_map(task))
        assert task.priority == 0

    def test_never_below_minimum(self):
        task = NullTask("a", priority=MIN_PRIORITY)
        BatchPolicy().sort(as_map(task))
        assert task.priority == MIN_PRIORITY

    def test_highest_priority_first(self):
        tasks = as_map(NullTask("low", priority=1), NullTask("high", priority=5))
        assert list(BatchPolicy().sort(tasks)) == ["high", "low"]


# ── Nice ─────────────────────────────────────────────────────────────────


class TestNice:
    def test_lowest_nice_first(self):
        tasks = as_map(NullTask("five", nice=5), NullTask("one", nice=1))
        assert list(NicePolicy().sort(tasks)) == ["one", "five"]

    def test_missing_nice_counts_as_zero(self):
        tasks = as_map(NullTask("five", nice=5), NullTask("unset"), NullTask("minus", nice=-3))
        assert list(NicePolicy().sort(tasks)) == ["minus", "unset", "five"]

    def test_no_reordering_with_priorities(self):
        tasks = as_map(NullTask("five", nice=5, priority=1), NullTask("one", nice=1))
        assert list(NicePolicy().sort(tasks)) == ["five", "one"]


# ── Idle ─────────────────────────────────────────────────────────────────


class TestIdle:
    def test_priorities_above_ceiling_pinned(self):
        tasks = as_map(NullTask("low", priority=1), NullTask("huge", priority=50), NullTask("mid", priority=10))
        assert list(IdlePolicy().sort(tasks)) == ["mid", "huge", "low"]


# ── Round Robin ──────────────────────────────────────────────────────────


class TestRoundRobin:
    def test_exhausted_quantum_demoted(self):
        slow = NullTask("slow", max_duration=1.0, execution_computation_time=5.0)
        quick = NullTask("quick", max_duration=1.0, execution_computation_time=0.2)
        assert list(RoundRobinPolicy().sort(as_map(slow, quick))) == ["quick", "slow"]

    def test_unmeasured_tasks_keep_order(self):
        tasks = as_map(NullTask("b"), NullTask("a"))
        assert list(RoundRobinPolicy().sort(tasks)) == ["b", "a"]


# ── Determinism & Registry ───────────────────────────────────────────────


class TestPolicies:
    @pytest.mark.parametrize("policy_cls", [FirstInFirstOutPolicy, RoundRobinPolicy, IdlePolicy, NicePolicy])
    def test_sorting_twice_gives_same_order(self, policy_cls):
        tasks = as_map(
            NullTask("a", priority=3, nice=4),
            NullTask("b"),
            NullTask("c", priority=7, nice=-2),
            NullTask("d", priority=30),
        )
        policy = policy_cls()
        assert list(policy.sort(tasks)) == list(policy.sort(tasks))

    def test_default_policies_cover_every_name(self, clock):
        policies = default_policies(clock)
        assert all(isinstance(policy, SchedulePolicy) for policy in policies)
        assert [policy.name for policy in policies] == list(POLICY_NAMES)

    def test_supports(self):
        assert NicePolicy().supports("normal")
        assert not NicePolicy().supports("nice")


# ── Orchestrator ─────────────────────────────────────────────────────────


class TestOrchestrator:
    def test_sorts_with_named_policy(self, orchestrator):
        tasks = as_map(NullTask("five", nice=5), NullTask("one", nice=1))
        assert list(orchestrator.sort("normal", tasks)) == ["one", "five"]

    def test_no_policies(self):
        with pytest.raises(NoPoliciesRegisteredError):
            SchedulePolicyOrchestrator().sort("first_in_first_out", as_map(NullTask("a")))

    def test_no_policies_checked_before_empty_input(self):
        with pytest.raises(NoPoliciesRegisteredError):
            SchedulePolicyOrchestrator().sort("first_in_first_out", {})

    def test_empty_input(self, orchestrator):
        assert orchestrator.sort("first_in_first_out", {}) == {}

    def test_unknown_policy(self, orchestrator):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            orchestrator.sort("lottery", as_map(NullTask("a")))
        assert exc_info.value.context.policy == "lottery"

    def test_register(self):
        orchestrator = SchedulePolicyOrchestrator()
        orchestrator.register(BatchPolicy())
        assert orchestrator.supports("batch")
        assert not orchestrator.supports("idle")
        assert len(orchestrator.policies) == 1
