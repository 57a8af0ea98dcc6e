"""Connection option value objects.

Callers describe where Redis lives with one of three variants:
LocalSocket (unix socket path), RemoteAddress (host and port) or
FullConfig (every field explicit). resolve_connection() turns any of
them, a legacy connection string, or nothing at all into one
normalized ConnectionDescriptor at client construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nsredis.core.config import Settings

DEFAULT_PORT = 6379


@dataclass(frozen=True)
class LocalSocket:
    """Redis reachable through a unix domain socket."""

    path: str

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("Socket path must be a non-empty string")


@dataclass(frozen=True)
class RemoteAddress:
    """Redis reachable over TCP."""

    host: str
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Host must be a non-empty string")
        if not 0 < self.port < 65536:
            raise ValueError(f"Port must be 1-65535, got: {self.port}")


@dataclass(frozen=True)
class FullConfig:
    """Every connection field explicit; path wins over host/port when set."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    path: str | None = None
    username: str | None = None
    password: str | None = None
    db: int = 0
    extra: dict[str, Any] = field(default_factory=dict)


ConnectionOptions = LocalSocket | RemoteAddress | FullConfig | str | None


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Normalized connection target passed to the redis driver."""

    host: str | None = None
    port: int | None = None
    socket_path: str | None = None
    username: str | None = None
    password: str | None = None
    db: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_socket(self) -> bool:
        return self.socket_path is not None

    def describe(self) -> str:
        """Human-readable target for logs (never includes credentials)."""
        if self.socket_path:
            return f"unix://{self.socket_path}/{self.db}"
        return f"{self.host}:{self.port}/{self.db}"


def parse_connection_string(value: str) -> LocalSocket | RemoteAddress:
    """Interpret a connection string as a socket path or host[:port].

    Strings containing '/' or ending in '.sock' are socket paths;
    anything else is a host with an optional port.

    Raises:
        ValueError: If the port part is not an integer.
    """
    if "/" in value or value.endswith(".sock"):
        return LocalSocket(path=value)
    host, _, port = value.partition(":")
    if not port:
        return RemoteAddress(host=host)
    try:
        return RemoteAddress(host=host, port=int(port))
    except ValueError as e:
        raise ValueError(f"Invalid port in connection string {value!r}: {e}") from e


def resolve_connection(
    options: ConnectionOptions,
    settings: Settings,
    username: str | None = None,
    password: str | None = None,
) -> ConnectionDescriptor:
    """Resolve connection options into a single descriptor.

    Explicit username/password arguments override settings; FullConfig
    credentials override both.

    Args:
        options: One of the connection variants, a connection string, or None
            to use the connection fields from settings.
        settings: Client settings (defaults and credentials).
        username: Optional username override.
        password: Optional password override.

    Returns:
        Normalized ConnectionDescriptor.
    """
    user = username or settings.redis_username
    secret = password or (
        settings.redis_password.get_secret_value() if settings.redis_password else None
    )
    if isinstance(options, str):
        options = parse_connection_string(options)

    if options is None:
        if settings.redis_socket_path:
            options = LocalSocket(path=settings.redis_socket_path)
        else:
            options = RemoteAddress(host=settings.redis_host, port=settings.redis_port)

    if isinstance(options, LocalSocket):
        return ConnectionDescriptor(
            socket_path=options.path, username=user, password=secret, db=settings.redis_db
        )
    if isinstance(options, RemoteAddress):
        return ConnectionDescriptor(
            host=options.host,
            port=options.port,
            username=user,
            password=secret,
            db=settings.redis_db,
        )
    if isinstance(options, FullConfig):
        return ConnectionDescriptor(
            host=None if options.path else options.host,
            port=None if options.path else options.port,
            socket_path=options.path,
            username=options.username or user,
            password=options.password or secret,
            db=options.db,
            extra=dict(options.extra),
        )
    raise TypeError(f"Unsupported connection options: {type(options).__name__}")
