"""Infrastructure: redis connection, key codec, transform cache, and keyspace messaging."""
