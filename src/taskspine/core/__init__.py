"""taskspine core -- tasks, scheduling, storages and the ambient stack.

Architecture::

    errors.py       Structured error hierarchy (TaskSpineError ...)
    logging.py      structlog configuration
    settings.py     TaskSpineSettings (pydantic-settings)
    clock.py        Clock protocol, SystemClock, ManualClock
    cron.py         Cron due-evaluation (croniter), REBOOT_MACRO
    messaging.py    MessageBus protocol, TaskMessage
    events/         Lifecycle events and the in-memory dispatcher
    tasks/          Task models, TaskCollection, TaskBuilder, tracker
    scheduling/     Policies, orchestrator, lock managers, Scheduler
    storage/        Storage protocol and backends, DSN factory
"""
