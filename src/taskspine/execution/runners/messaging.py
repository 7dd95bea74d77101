"""Runners handing work to a message bus or a notifier."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from taskspine.core.messaging import MessageBus
from taskspine.core.tasks.models import MessengerTask, NotificationTask, Output, Task


@runtime_checkable
class Notifier(Protocol):
    """Anything able to deliver a notification to recipients."""

    def send(self, notification: Any, *recipients: str) -> Any:
        ...


class MessengerTaskRunner:
    def __init__(self, bus: MessageBus) -> None:
        self.bus = bus

    def supports(self, task: Task) -> bool:
        return isinstance(task, MessengerTask)

    def run(self, task: Task) -> Output:
        self.bus.dispatch(task.message)
        return Output(task)


class NotificationTaskRunner:
    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    def supports(self, task: Task) -> bool:
        return isinstance(task, NotificationTask)

    def run(self, task: Task) -> Output:
        self.notifier.send(task.notification, *task.recipients)
        return Output(task)
