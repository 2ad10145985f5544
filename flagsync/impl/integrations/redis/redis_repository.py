import json
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Mapping, Optional, Set

have_redis = False
try:
    import redis
    have_redis = True
except ImportError:
    pass

from flagsync.data_kind import FLAGS, SEGMENTS, DataKind
from flagsync.impl.model import FlagDefinition, SegmentMembership
from flagsync.impl.util import RepositoryError, log, redact_password
from flagsync.interfaces import Repository


class _RedisRepository(Repository):
    """
    Key layout, all under one prefix:

    - ``<prefix>:flags`` hash of flag name to flag JSON, cursor in ``<prefix>:flags.till``
    - ``<prefix>:segment.<name>`` set of member keys, its change number in ``<prefix>:segment.<name>.till``
    - ``<prefix>:segments`` set of known segment names, collection cursor in ``<prefix>:segments.till``
    """

    def __init__(self, url, prefix, max_connections):
        if not have_redis:
            raise NotImplementedError("Cannot use Redis repository because redis package is not installed")
        self._prefix = prefix or 'flagsync'
        self._pool = redis.ConnectionPool.from_url(url=url, max_connections=max_connections)
        self.test_update_hook = None  # exposed for testing
        log.info("Started RedisRepository connected to URL: " + redact_password(url) + " using prefix: " + self._prefix)

    def _client(self):
        return redis.Redis(connection_pool=self._pool)

    def _items_key(self, kind: DataKind) -> str:
        return "{0}:{1}".format(self._prefix, kind.namespace)

    def _till_key(self, kind: DataKind) -> str:
        return "{0}:{1}.till".format(self._prefix, kind.namespace)

    def _segment_key(self, name: str) -> str:
        return "{0}:segment.{1}".format(self._prefix, name)

    def _segment_till_key(self, name: str) -> str:
        return "{0}:segment.{1}.till".format(self._prefix, name)

    @contextmanager
    def _errors(self, operation: str):
        try:
            yield
        except redis.exceptions.RedisError as e:
            log.warning("RedisRepository: %s failed: %s", operation, e)
            raise RepositoryError("Redis %s failed: %s" % (operation, e)) from e

    def get(self, kind: DataKind, key: str) -> Optional[Any]:
        with self._errors('get'):
            if kind is SEGMENTS:
                return self._get_segment(self._client(), key)
            item_json = self._client().hget(self._items_key(kind), key)
        if item_json is None or item_json == "":
            log.debug("RedisRepository: key %s not found in '%s'. Returning None.", key, kind.namespace)
            return None
        return kind.decode(json.loads(item_json.decode('utf-8')))

    def all(self, kind: DataKind) -> Dict[str, Any]:
        with self._errors('all'):
            r = self._client()
            if kind is SEGMENTS:
                results = {}
                for name in r.smembers(self._items_key(SEGMENTS)):
                    name = name.decode('utf-8')
                    segment = self._get_segment(r, name)
                    if segment is not None:
                        results[name] = segment
                return results
            all_items = r.hgetall(self._items_key(kind))

        results = {}
        for key, item_json in (all_items or {}).items():
            key = key.decode('utf-8')  # necessary in Python 3
            results[key] = kind.decode(json.loads(item_json.decode('utf-8')))
        return results

    def put(self, kind: DataKind, key: str, item: Any):
        item = kind.decode(item)
        with self._errors('put'):
            pipe = self._client().pipeline()
            self._queue_put(pipe, kind, key, item)
            pipe.execute()

    def remove(self, kind: DataKind, key: str):
        with self._errors('remove'):
            pipe = self._client().pipeline()
            self._queue_remove(pipe, kind, key)
            pipe.execute()

    def update(self, kind: DataKind, to_put: Mapping[str, Any], to_remove: Iterable[str], change_number: int):
        decoded = {key: kind.decode(item) for key, item in to_put.items()}
        to_remove = list(to_remove)
        till_key = self._till_key(kind)
        with self._errors('update'):
            r = self._client()
            while True:
                pipeline = r.pipeline()
                pipeline.watch(till_key)
                current = _to_int(pipeline.get(till_key))
                if self.test_update_hook is not None:
                    self.test_update_hook(till_key)
                pipeline.multi()
                for key, item in decoded.items():
                    self._queue_put(pipeline, kind, key, item)
                for key in to_remove:
                    self._queue_remove(pipeline, kind, key)
                if change_number > current:
                    pipeline.set(till_key, change_number)
                try:
                    pipeline.execute()
                except redis.exceptions.WatchError:
                    log.debug("RedisRepository: concurrent modification of %s detected, retrying", till_key)
                    continue
                break
        log.debug("RedisRepository: updated '%s' with %d upserts and %d removals", kind.namespace, len(decoded), len(to_remove))

    def get_change_number(self, kind: DataKind) -> int:
        with self._errors('get_change_number'):
            return _to_int(self._client().get(self._till_key(kind)))

    def set_change_number(self, kind: DataKind, change_number: int):
        with self._errors('set_change_number'):
            self._client().set(self._till_key(kind), change_number)

    def merge_segment(self, name: str, added: Iterable[str], removed: Iterable[str], change_number: int):
        added = list(added)
        removed = list(removed)
        segment_key = self._segment_key(name)
        segment_till_key = self._segment_till_key(name)
        till_key = self._till_key(SEGMENTS)
        with self._errors('merge_segment'):
            r = self._client()
            while True:
                pipeline = r.pipeline()
                pipeline.watch(segment_till_key, till_key)
                segment_current = _to_int(pipeline.get(segment_till_key))
                current = _to_int(pipeline.get(till_key))
                if self.test_update_hook is not None:
                    self.test_update_hook(segment_till_key)
                pipeline.multi()
                if added:
                    pipeline.sadd(segment_key, *added)
                if removed:
                    pipeline.srem(segment_key, *removed)
                pipeline.set(segment_till_key, max(segment_current, change_number))
                pipeline.sadd(self._items_key(SEGMENTS), name)
                if change_number > current:
                    pipeline.set(till_key, change_number)
                try:
                    pipeline.execute()
                except redis.exceptions.WatchError:
                    log.debug("RedisRepository: concurrent modification of segment %s detected, retrying", name)
                    continue
                return

    def segment_change_number(self, name: str) -> int:
        with self._errors('segment_change_number'):
            return _to_int(self._client().get(self._segment_till_key(name)))

    def kill(self, flag_name: str, default_treatment: str, change_number: int) -> bool:
        base_key = self._items_key(FLAGS)
        with self._errors('kill'):
            r = self._client()
            while True:
                pipeline = r.pipeline()
                pipeline.watch(base_key)
                item_json = pipeline.hget(base_key, flag_name)
                if self.test_update_hook is not None:
                    self.test_update_hook(base_key)
                old = None if item_json is None else FlagDefinition(json.loads(item_json.decode('utf-8')))
                if old is None or old.change_number >= change_number:
                    pipeline.unwatch()
                    return False
                pipeline.multi()
                pipeline.hset(base_key, flag_name, json.dumps(old.with_kill(default_treatment, change_number).to_json_dict()))
                try:
                    pipeline.execute()
                    # in redis-py a failed WATCH produces an exception rather than a null result
                except redis.exceptions.WatchError:
                    log.debug("RedisRepository: concurrent modification of flag %s detected, retrying", flag_name)
                    continue
                return True

    def used_segment_names(self) -> Set[str]:
        names = set()
        for flag in self.all(FLAGS).values():
            names.update(flag.segment_names)
        return names

    def clear(self):
        with self._errors('clear'):
            r = self._client()
            keys = list(r.scan_iter(match=self._prefix + ':*'))
            if keys:
                r.delete(*keys)
        log.info("Cleared RedisRepository data under prefix %s", self._prefix)

    def _get_segment(self, r, name: str) -> Optional[SegmentMembership]:
        pipe = r.pipeline(transaction=False)
        pipe.smembers(self._segment_key(name))
        pipe.get(self._segment_till_key(name))
        members, till = pipe.execute()
        if till is None:
            return None
        return SegmentMembership.build(name, [m.decode('utf-8') for m in members], int(till))

    def _queue_put(self, pipe, kind: DataKind, key: str, item):
        if kind is SEGMENTS:
            segment_key = self._segment_key(key)
            pipe.delete(segment_key)
            if item.keys:
                pipe.sadd(segment_key, *item.keys)
            pipe.set(self._segment_till_key(key), item.change_number)
            pipe.sadd(self._items_key(SEGMENTS), key)
        else:
            pipe.hset(self._items_key(kind), key, json.dumps(kind.encode(item)))

    def _queue_remove(self, pipe, kind: DataKind, key: str):
        if kind is SEGMENTS:
            pipe.delete(self._segment_key(key), self._segment_till_key(key))
            pipe.srem(self._items_key(SEGMENTS), key)
        else:
            pipe.hdel(self._items_key(kind), key)


def _to_int(value) -> int:
    return -1 if value is None else int(value)
