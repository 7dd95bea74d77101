"""Tests for taskspine.core.events — Event model and InMemoryEventDispatcher."""

import pytest

from taskspine.core.events import Event, EventDispatcher, EventType
from taskspine.core.events.memory import InMemoryEventDispatcher


# ------------------------------------------------------------------ #
# Event model
# ------------------------------------------------------------------ #


class TestEvent:
    def test_defaults(self):
        event = Event(event_type="task.scheduled", source="test")
        assert event.payload == {}
        assert event.event_id
        assert event.timestamp

    def test_enum_type_normalized(self):
        event = Event(event_type=EventType.TASK_FAILED, source="worker")
        assert event.event_type == "task.failed"

    def test_task_and_worker_shortcuts(self):
        event = Event(event_type="task.executed", source="worker", payload={"task": "t", "worker": "w"})
        assert event.task == "t"
        assert event.worker == "w"
        assert Event(event_type="x", source="y").task is None

    def test_matches(self):
        event = Event(event_type="worker.running", source="worker")
        assert event.matches("worker.running")
        assert event.matches(EventType.WORKER_RUNNING)
        assert event.matches("worker.*")
        assert event.matches("*")
        assert not event.matches("task.*")


# ------------------------------------------------------------------ #
# InMemoryEventDispatcher
# ------------------------------------------------------------------ #


class TestInMemoryEventDispatcher:
    @pytest.fixture
    def dispatcher(self):
        return InMemoryEventDispatcher()

    def test_is_a_dispatcher(self, dispatcher):
        assert isinstance(dispatcher, EventDispatcher)

    def test_delivers_in_subscription_order(self, dispatcher):
        received = []
        dispatcher.subscribe("task.*", lambda event: received.append(("first", event.event_type)))
        dispatcher.subscribe(EventType.TASK_SCHEDULED, lambda event: received.append(("second", event.event_type)))

        dispatcher.dispatch(Event(event_type=EventType.TASK_SCHEDULED, source="scheduler"))

        assert received == [("first", "task.scheduled"), ("second", "task.scheduled")]

    def test_non_matching_not_delivered(self, dispatcher):
        received = []
        dispatcher.subscribe("worker.*", received.append)
        dispatcher.dispatch(Event(event_type="task.failed", source="worker"))
        assert received == []

    def test_failing_handler_does_not_block_others(self, dispatcher):
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        dispatcher.subscribe("*", broken)
        dispatcher.subscribe("*", received.append)
        dispatcher.dispatch(Event(event_type="task.failed", source="worker"))

        assert len(received) == 1

    def test_unsubscribe(self, dispatcher):
        received = []
        sub_id = dispatcher.subscribe("*", received.append)
        assert dispatcher.subscription_count == 1

        dispatcher.unsubscribe(sub_id)
        dispatcher.dispatch(Event(event_type="task.failed", source="worker"))

        assert received == []
        assert dispatcher.subscription_count == 0

    def test_clear(self, dispatcher):
        dispatcher.subscribe("*", lambda event: None)
        dispatcher.clear()
        assert dispatcher.subscription_count == 0
