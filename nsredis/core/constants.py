"""Core constants: key layout, keyspace channels, and cache policy literals.

Single source of truth for key structure (DRY). Used by the key codec,
the transform cache, and the keyspace notification router.
"""

# Delimiter between namespace and local key
KEY_SEP = ":"

# Keyspace notification channels: __keyspace@<db>__:<namespace>:<key>
KEYSPACE_CHANNEL_TEMPLATE = "__keyspace@{db}__"
KEYSPACE_EVENT_NAME = "keyspace"
NOTIFY_KEYSPACE_CONFIG = "notify-keyspace-events"

# Transform cache: evict this fraction of the ceiling once it is reached
CACHE_EVICTION_FRACTION = 0.2
FINGERPRINT_PREFIX_CHARS = 100

DEFAULT_BATCH_SIZE = 100
