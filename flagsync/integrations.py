"""
This submodule contains factory/configuration methods for integrating the synchronization client
with external storage.
"""

from flagsync.impl.integrations.redis.redis_repository import _RedisRepository


class Redis:
    """Provides factory methods for integrations between the client and Redis.
    """
    DEFAULT_URL = 'redis://localhost:6379/0'
    DEFAULT_PREFIX = 'flagsync'
    DEFAULT_MAX_CONNECTIONS = 16

    @staticmethod
    def new_repository(url: str = 'redis://localhost:6379/0',
                       prefix: str = 'flagsync',
                       max_connections: int = 16) -> _RedisRepository:
        """Creates a Redis-backed implementation of :class:`flagsync.interfaces.Repository`.

        Several processes pointed at the same Redis instance and prefix share one copy of the
        synchronized state. To use this method, you must first install the ``redis`` package. Then,
        put the object returned by this method into the ``repository`` property of your client
        configuration (:class:`flagsync.config.Config`).

        :param url: the URL of the Redis host; defaults to ``DEFAULT_URL``
        :param prefix: a namespace prefix to be prepended to all Redis keys; defaults to
          ``DEFAULT_PREFIX``
        :param max_connections: the maximum number of Redis connections to keep in the
          connection pool; defaults to ``DEFAULT_MAX_CONNECTIONS``
        """
        return _RedisRepository(url, prefix, max_connections)


__all__ = ['Redis']
