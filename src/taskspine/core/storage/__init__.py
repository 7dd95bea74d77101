"""Task storages.

Modules
-------
protocol    Storage protocol and error contract
memory      InMemoryStorage -- process-local, reference semantics
sqlite      SqliteStorage -- durable, shareable between processes
filesystem  FilesystemStorage -- one JSON file per task
composite   FailoverStorage, RoundRobinStorage, LongTailStorage
dsn         Dsn parsing and create_storage()
"""

from taskspine.core.storage.composite import FailoverStorage, LongTailStorage, RoundRobinStorage
from taskspine.core.storage.dsn import Dsn, create_storage
from taskspine.core.storage.filesystem import FilesystemStorage
from taskspine.core.storage.memory import InMemoryStorage
from taskspine.core.storage.protocol import Storage
from taskspine.core.storage.sqlite import SqliteStorage

__all__ = [
    "Dsn",
    "FailoverStorage",
    "FilesystemStorage",
    "InMemoryStorage",
    "LongTailStorage",
    "RoundRobinStorage",
    "SqliteStorage",
    "Storage",
    "create_storage",
]
