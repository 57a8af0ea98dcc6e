"""Redis keyspace notifications routed to local listeners.

Subscribes to __keyspace@<db>__:<namespace>:* patterns on a dedicated
pub/sub connection (subscription mode cannot share a connection with
ordinary commands) and re-emits each notification as a KeyspaceEvent
under the "keyspace" event name.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

import redis.asyncio as redis

from nsredis.core.constants import KEYSPACE_EVENT_NAME, NOTIFY_KEYSPACE_CONFIG
from nsredis.domain.entities.keyspace_event import KeyspaceEvent
from nsredis.domain.enums import RouterState
from nsredis.domain.exceptions import ConfigurationException, StoreConnectionException
from nsredis.infrastructure.cache.keys import keyspace_pattern, parse_keyspace_channel
from nsredis.infrastructure.messaging.listeners import ListenerRegistry

logger = logging.getLogger(__name__)


class KeyspaceNotificationRouter:
    """Keyspace subscriptions for one client.

    State: UNCONFIGURED until the first subscribe() enables notifications on
    the server (CONFIG SET on the main connection, once), then ACTIVE. The
    subscription registry (self.namespaces) survives reconnects: after the
    pub/sub connection drops, every registered namespace is subscribed
    again on the same pub/sub handle.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        listeners: ListenerRegistry,
        alias: str = "default",
        db: int = 0,
        notify_flags: str = "KEA",
        reconnect_delay: float = 1.0,
    ) -> None:
        self.redis = redis_client
        self.listeners = listeners
        self.alias = alias
        self.db = db
        self.notify_flags = notify_flags
        self.reconnect_delay = reconnect_delay
        self.state = RouterState.UNCONFIGURED
        self.namespaces: set[str] = set()
        self.pubsub: Any = None
        self._config_lock = asyncio.Lock()
        self._listener_task: asyncio.Task | None = None

    def _get_pubsub(self) -> Any:
        if self.pubsub is None:
            self.pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        return self.pubsub

    async def _configure(self) -> None:
        """Enable keyspace notifications on the server; failure is logged, not raised."""
        async with self._config_lock:
            if self.state is not RouterState.UNCONFIGURED:
                return
            self.state = RouterState.CONFIGURING
            try:
                await self.redis.config_set(NOTIFY_KEYSPACE_CONFIG, self.notify_flags)
                logger.info(
                    "[%s] Keyspace notifications enabled (%s)", self.alias, self.notify_flags
                )
            except redis.RedisError as e:
                # Managed deployments often pre-configure this and reject CONFIG SET.
                logger.warning(
                    "[%s] %s",
                    self.alias,
                    ConfigurationException(
                        f"Could not enable keyspace notifications: {e}",
                        setting=NOTIFY_KEYSPACE_CONFIG,
                    ),
                )
            self.state = RouterState.ACTIVE

    async def subscribe(self, namespaces: str | Iterable[str]) -> list[str]:
        """Subscribe to keyspace events for one or more namespaces.

        Namespaces already subscribed are left as they are.

        Returns:
            Namespaces newly subscribed by this call.

        Raises:
            ValueError: If a namespace is empty or contains the key separator.
            StoreConnectionException: If the pub/sub connection is unavailable.
        """
        names = [namespaces] if isinstance(namespaces, str) else list(namespaces)
        patterns = {name: keyspace_pattern(self.db, name) for name in names}
        await self._configure()
        pubsub = self._get_pubsub()
        added: list[str] = []
        for name, pattern in patterns.items():
            if name in self.namespaces:
                continue
            try:
                await pubsub.psubscribe(pattern)
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.error("[%s] Subscription error: %s", self.alias, e)
                raise StoreConnectionException(
                    f"Cannot subscribe to '{name}': {e}", alias=self.alias
                ) from e
            self.namespaces.add(name)
            added.append(name)
            logger.info("[%s] Subscribed to keyspace events for '%s'.", self.alias, name)
        self._ensure_listener()
        return added

    async def unsubscribe(self, namespace: str) -> bool:
        """Drop the subscription for namespace. Returns False if it was not subscribed."""
        if namespace not in self.namespaces:
            return False
        await self._get_pubsub().punsubscribe(keyspace_pattern(self.db, namespace))
        self.namespaces.discard(namespace)
        logger.info("[%s] Unsubscribed from '%s'.", self.alias, namespace)
        return True

    async def handle_message(self, message: dict[str, Any] | None) -> KeyspaceEvent | None:
        """Route one pub/sub message; returns the emitted event or None if ignored."""
        if not message or message.get("type") != "pmessage":
            return None
        parsed = parse_keyspace_channel(message.get("channel") or "", self.db)
        if parsed is None:
            return None
        namespace, key = parsed
        if namespace not in self.namespaces:
            return None
        data = message.get("data")
        kind = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else str(data)
        event = KeyspaceEvent(namespace=namespace, key=key, event=kind)
        await self.listeners.emit(KEYSPACE_EVENT_NAME, event)
        return event

    async def resubscribe(self) -> None:
        """Reconnect the pub/sub handle in place and restore every registered subscription.

        Subscriptions are re-issued only after the new connection is
        established; calling this repeatedly yields the same subscriptions.
        """
        pubsub = self._get_pubsub()
        await pubsub.aclose()
        await pubsub.connect()
        for name in sorted(self.namespaces):
            await pubsub.psubscribe(keyspace_pattern(self.db, name))
        logger.info(
            "[%s] Subscription client reconnected; restored %s namespaces",
            self.alias,
            len(self.namespaces),
        )

    def _ensure_listener(self) -> None:
        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        """Deliver messages until no subscriptions remain; reconnect on connection loss."""
        while self.namespaces:
            try:
                async for message in self._get_pubsub().listen():
                    await self.handle_message(message)
                return
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("[%s] Keyspace subscription connection lost: %s", self.alias, e)
                await asyncio.sleep(self.reconnect_delay)
                try:
                    await self.resubscribe()
                except (redis.ConnectionError, redis.TimeoutError) as retry_error:
                    logger.warning(
                        "[%s] Resubscribe failed, retrying in %ss: %s",
                        self.alias,
                        self.reconnect_delay,
                        retry_error,
                    )
            except redis.RedisError:
                logger.exception("[%s] Keyspace subscription error", self.alias)
                return

    async def close(self) -> None:
        """Stop the listener and close the pub/sub connection."""
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self.pubsub is not None:
            await self.pubsub.aclose()
            self.pubsub = None
        self.namespaces.clear()
        logger.info("[%s] Keyspace router closed", self.alias)
