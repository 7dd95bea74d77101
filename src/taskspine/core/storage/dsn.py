"""Storage DSN parsing and the storage factory.

Grammar: ``scheme://[user[:password]@]host[:port][/path][?opt=val&...]``.

Supported storages:

    memory://<execution_mode>                      InMemoryStorage
    sqlite:///<relative path> | sqlite:////<abs>   SqliteStorage
    sqlite://:memory:                              SqliteStorage (private DB)
    fs:///<dir> | filesystem://<mode>?path=<dir>   FilesystemStorage
    failover://(<dsn> || <dsn>)     (fo://)        FailoverStorage
    roundrobin://(<dsn> || <dsn>)   (rr://)        RoundRobinStorage
    longtail://(<dsn> || <dsn>)     (lt://)        LongTailStorage

Query options (``execution_mode``, ``nice``, ``quantum`` ...) are passed to
the storage; integer-looking values become ints.  Options on a composite
DSN apply to the composite itself, options on each inner DSN to that
storage.

Example:
    >>> Dsn.from_string("memory://batch?nice=5")
    Dsn(scheme='memory', host='batch', path=None, user=None, password=None, port=None, options={'nice': 5}, children=())
    >>> create_storage("failover://(sqlite:///tasks.db || memory://)")
    <taskspine.core.storage.composite.FailoverStorage ...>
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, unquote, urlsplit

from taskspine.core.errors import InvalidConfigurationError
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.scheduling.policies import POLICY_NAMES, default_policies
from taskspine.core.storage.composite import FailoverStorage, LongTailStorage, RoundRobinStorage
from taskspine.core.storage.filesystem import FilesystemStorage
from taskspine.core.storage.memory import InMemoryStorage
from taskspine.core.storage.protocol import Storage
from taskspine.core.storage.sqlite import SqliteStorage

COMPOSITE_SCHEMES = {
    "failover": "failover",
    "fo": "failover",
    "roundrobin": "roundrobin",
    "rr": "roundrobin",
    "longtail": "longtail",
    "lt": "longtail",
}
DSN_SEPARATOR = " || "

_SCHEME_RE = re.compile(r"^(?P<scheme>[a-z][a-z0-9+.-]*)://(?P<rest>.*)$", re.IGNORECASE)


def _coerce(value: str) -> Any:
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    return value


@dataclass(frozen=True)
class Dsn:
    """Parsed storage DSN."""

    scheme: str
    host: str | None = None
    path: str | None = None
    user: str | None = None
    password: str | None = None
    port: int | None = None
    options: dict[str, Any] = field(default_factory=dict)
    children: tuple[str, ...] = ()

    @classmethod
    def from_string(cls, dsn: str) -> Dsn:
        """Parse *dsn*.

        Raises:
            InvalidConfigurationError: If the string is not a DSN.
        """
        match = _SCHEME_RE.match(dsn.strip())
        if match is None:
            raise InvalidConfigurationError(f'The DSN "{dsn}" is invalid')
        scheme = match.group("scheme").lower()
        rest = match.group("rest")

        if scheme in COMPOSITE_SCHEMES:
            return cls._parse_composite(dsn, scheme, rest)

        parts = urlsplit(f"{scheme}://{rest}")
        netloc = parts.netloc
        user = password = None
        if "@" in netloc:
            credentials, netloc = netloc.rsplit("@", 1)
            user, _, password = credentials.partition(":")
            user = unquote(user) or None
            password = unquote(password) or None

        host, port = netloc or None, None
        if host and host != ":memory:":
            name, sep, maybe_port = host.rpartition(":")
            if sep and maybe_port.isdigit():
                host, port = name, int(maybe_port)

        return cls(
            scheme=scheme,
            host=host,
            path=parts.path or None,
            user=user,
            password=password,
            port=port,
            options={key: _coerce(value) for key, value in parse_qsl(parts.query)},
        )

    @classmethod
    def _parse_composite(cls, dsn: str, scheme: str, rest: str) -> Dsn:
        if not rest.startswith("("):
            raise InvalidConfigurationError(
                f'The DSN "{dsn}" must list its storages as ({DSN_SEPARATOR.join(["<dsn>", "<dsn>"])})'
            )
        end = rest.rfind(")")
        if end == -1:
            raise InvalidConfigurationError(f'The DSN "{dsn}" is missing a closing parenthesis')
        children = tuple(part.strip() for part in rest[1:end].split("||") if part.strip())
        if not children:
            raise InvalidConfigurationError(f'The DSN "{dsn}" does not list any storage')

        query = rest[end + 1 :]
        options = {}
        if query.startswith("?"):
            options = {key: _coerce(value) for key, value in parse_qsl(query[1:])}
        return cls(scheme=COMPOSITE_SCHEMES[scheme], options=options, children=children)

    @property
    def is_composite(self) -> bool:
        return bool(self.children)


def sqlite_database(dsn: Dsn) -> str:
    """SQLite database path of a ``sqlite://`` DSN."""
    if dsn.host == ":memory:" or dsn.path in (None, "/", "/:memory:"):
        return ":memory:"
    # sqlite:///relative.db and sqlite:////absolute.db
    return dsn.path[1:]


def _filesystem_directory(dsn: Dsn, options: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    options = dict(options)
    directory = options.pop("path", None)
    if dsn.host and dsn.host in POLICY_NAMES:
        options.setdefault("execution_mode", dsn.host)
        return directory or dsn.path, options
    if directory is None:
        directory = f"{dsn.host or ''}{dsn.path or ''}" or None
    return directory, options


def create_storage(
    dsn: str | Dsn,
    orchestrator: SchedulePolicyOrchestrator | None = None,
    options: dict[str, Any] | None = None,
) -> Storage:
    """Build the storage described by *dsn*.

    Args:
        dsn: DSN string or parsed :class:`Dsn`
        orchestrator: Policy orchestrator shared by every built storage
        options: Extra options merged under the DSN query options

    Raises:
        InvalidConfigurationError: For unknown schemes or malformed DSNs.
    """
    parsed = dsn if isinstance(dsn, Dsn) else Dsn.from_string(dsn)
    orchestrator = orchestrator or SchedulePolicyOrchestrator(default_policies())
    merged = {**(options or {}), **parsed.options}

    if parsed.is_composite:
        children = [create_storage(child, orchestrator) for child in parsed.children]
        if parsed.scheme == "failover":
            return FailoverStorage(children, merged)
        if parsed.scheme == "roundrobin":
            return RoundRobinStorage(children, merged)
        return LongTailStorage(children, merged)

    if parsed.scheme == "memory":
        if parsed.host:
            merged.setdefault("execution_mode", parsed.host)
        return InMemoryStorage(merged, orchestrator)

    if parsed.scheme == "sqlite":
        conn = sqlite3.connect(sqlite_database(parsed), check_same_thread=False)
        return SqliteStorage(conn, merged, orchestrator)

    if parsed.scheme in ("fs", "filesystem"):
        directory, storage_options = _filesystem_directory(parsed, merged)
        return FilesystemStorage(directory, storage_options, orchestrator)

    raise InvalidConfigurationError(
        f'No storage supports the DSN "{parsed.scheme}://"'
    ).with_context(storage=parsed.scheme)


__all__ = ["Dsn", "create_storage", "sqlite_database", "COMPOSITE_SCHEMES", "DSN_SEPARATOR"]
