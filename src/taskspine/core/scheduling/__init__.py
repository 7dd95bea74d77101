"""Scheduling package for taskspine.

Manifesto:
    Deciding *what* runs *when* and in *which order* is kept apart from
    running it.  This package owns the scheduler (registration and due
    selection), the schedule policies that order due tasks, and the
    per-task locks workers use to never run a task twice at once.

┌──────────────────────────────────────────────────────────────────────┐
│  Quick Start:                                                        │
│                                                                      │
│   from taskspine.core.scheduling import (                            │
│       Scheduler,                                                     │
│       SchedulePolicyOrchestrator,                                    │
│       InMemoryLockManager,                                           │
│       default_policies,                                              │
│   )                                                                  │
│   from taskspine.core.storage import InMemoryStorage                 │
│                                                                      │
│   orchestrator = SchedulePolicyOrchestrator(default_policies())      │
│   storage = InMemoryStorage({"execution_mode": "deadline"},          │
│                             orchestrator)                            │
│   scheduler = Scheduler(storage, timezone="UTC")                     │
│   scheduler.schedule(ShellTask("backup", command=["backup.sh"]))     │
│   due = scheduler.get_due_tasks()                                    │
│                                                                      │
│  Dependencies:                                                       │
│  - croniter: Cron expression parsing                                 │
└──────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a task without acquiring its lock
    ✅ Worker brackets every run with acquire/release
"""

from taskspine.core.scheduling.lock_manager import (
    InMemoryLockManager,
    LockManager,
    SqliteLockManager,
)
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
from taskspine.core.scheduling.scheduler import Scheduler

__all__ = [
    "POLICY_NAMES",
    "BatchPolicy",
    "DeadlinePolicy",
    "FirstInFirstOutPolicy",
    "IdlePolicy",
    "InMemoryLockManager",
    "LockManager",
    "NicePolicy",
    "RoundRobinPolicy",
    "SchedulePolicy",
    "SchedulePolicyOrchestrator",
    "Scheduler",
    "SqliteLockManager",
    "default_policies",
]
