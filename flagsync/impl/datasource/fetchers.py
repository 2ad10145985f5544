"""
Diff fetchers: pull incremental changes for one collection and merge them into the repository.
"""

from collections import namedtuple
from typing import Iterable, List, Optional, Set

from urllib3.exceptions import HTTPError

from flagsync.data_kind import FLAGS, SEGMENTS
from flagsync.impl.model import FlagDefinition
from flagsync.impl.model.entity import opt_str_list, req_int, req_str
from flagsync.impl.util import (FetchError, RepositoryError,
                                UnsuccessfulResponseException,
                                http_error_message, is_http_error_recoverable,
                                log)
from flagsync.interfaces import ChangesRequester, Repository

# One decoded response. For flags, changes is a list of FlagDefinition; for segments it holds a
# single SegmentDiff.
ChangeSet = namedtuple('ChangeSet', ['changes', 'since', 'till'])

SegmentDiff = namedtuple('SegmentDiff', ['name', 'added', 'removed'])

# Bounds a catch-up loop against a server that keeps reporting newer cursors.
MAX_PAGES = 100


def _request(context: str, call):
    """Runs one request, translating every failure into a FetchError with the reason logged."""
    try:
        return call()
    except UnsuccessfulResponseException as e:
        message = http_error_message(e.status, context)
        if is_http_error_recoverable(e.status):
            log.warning(message)
        else:
            log.error(message)
        raise FetchError(message, status=e.status, cause=e) from e
    except (HTTPError, OSError) as e:
        log.warning("Network error for %s - will retry: %s", context, e)
        raise FetchError("network error for %s" % context, cause=e) from e
    except ValueError as e:
        # a body that is not JSON at all
        log.error("Unreadable response body for %s, skipping merge: %s", context, e)
        raise FetchError("invalid data for %s" % context, cause=e) from e


def _decode(context: str, decoder, data):
    try:
        return decoder(data)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        log.error("Unexpected response structure for %s, skipping merge: %s", context, e)
        raise FetchError("invalid data for %s" % context, cause=e) from e


def _merge(context: str, apply):
    try:
        apply()
    except RepositoryError as e:
        log.warning("Repository unavailable while merging %s - will retry: %s", context, e)
        raise FetchError("repository error for %s" % context, cause=e) from e


class FlagsFetcher:
    """
    Fetches flag definition diffs. Archived definitions are removed from the repository; every other
    definition is upserted. A response is merged as a whole or not at all.
    """

    def __init__(self, requester: ChangesRequester, repository: Repository):
        self._requester = requester
        self._repository = repository

    def fetch_since(self, since: int, till: Optional[int] = None) -> ChangeSet:
        data = _request("flag changes", lambda: self._requester.fetch_flag_changes(since, till))
        return _decode("flag changes", _decode_flag_changes, data)

    def fetch(self, till: Optional[int] = None) -> int:
        """
        Fetches and merges until the server reports no newer changes, or until the cursor reaches
        ``till`` when given.

        :return: the cursor after merging
        :raises FetchError: if a request or merge failed; earlier pages stay merged
        """
        for _ in range(MAX_PAGES):
            since = self._repository.get_change_number(FLAGS)
            if till is not None and since >= till:
                return since
            change_set = self.fetch_since(since, till)
            self._apply(change_set)
            if change_set.till <= since:
                break
        else:
            log.warning("Flag changes still pending after %d pages, continuing on the next fetch", MAX_PAGES)
        return self._repository.get_change_number(FLAGS)

    def _apply(self, change_set: ChangeSet):
        to_put = {}
        to_remove = []
        for flag in change_set.changes:
            if flag.archived:
                to_remove.append(flag.name)
            else:
                to_put[flag.name] = flag
        _merge("flag changes", lambda: self._repository.update(FLAGS, to_put, to_remove, change_set.till))
        if to_put or to_remove:
            log.debug("Merged %d flag updates and %d removals, cursor %d", len(to_put), len(to_remove), change_set.till)


class SegmentsFetcher:
    """
    Fetches membership diffs for exactly the segments that the current flags reference.
    """

    def __init__(self, requester: ChangesRequester, repository: Repository):
        self._requester = requester
        self._repository = repository

    def fetch_since(self, name: str, since: int, till: Optional[int] = None) -> ChangeSet:
        context = "segment %s changes" % name
        data = _request(context, lambda: self._requester.fetch_segment_changes(name, since, till))
        return _decode(context, _decode_segment_changes, data)

    def fetch_segment(self, name: str, till: Optional[int] = None) -> int:
        """
        Fetches and merges one segment until it is caught up, or until its own cursor reaches
        ``till`` when given.

        :return: the segment's cursor after merging
        """
        for _ in range(MAX_PAGES):
            since = self._repository.segment_change_number(name)
            if till is not None and since >= till:
                return since
            change_set = self.fetch_since(name, since, till)
            for diff in change_set.changes:
                _merge("segment %s" % name, lambda: self._repository.merge_segment(name, diff.added, diff.removed, change_set.till))
            if change_set.till <= since:
                break
        else:
            log.warning("Segment %s changes still pending after %d pages, continuing on the next fetch", name, MAX_PAGES)
        return self._repository.segment_change_number(name)

    def fetch_segments(self, names: Iterable[str]):
        """
        Fetches every named segment. A failure for one segment does not stop the others.

        :raises FetchError: after all segments were attempted, if any of them failed
        """
        failed = []
        for name in sorted(names):
            try:
                self.fetch_segment(name)
            except FetchError:
                failed.append(name)
        if failed:
            raise FetchError("could not fetch segments: %s" % ", ".join(failed))

    def fetch_all(self):
        names = self._repository.used_segment_names()
        log.debug("Fetching segments: %s", sorted(names))
        self.fetch_segments(names)

    def unsynced_segment_names(self) -> Set[str]:
        return set(name for name in self._repository.used_segment_names() if self._repository.segment_change_number(name) == -1)

    def fetch_missing(self):
        """Fetches segments that flags reference but that were never synchronized."""
        names = self.unsynced_segment_names()
        if names:
            self.fetch_segments(names)


def _decode_flag_changes(data: dict) -> ChangeSet:
    changes: List[FlagDefinition] = [FlagDefinition(item) for item in data['changes']]
    return ChangeSet(changes=changes, since=req_int(data, 'since'), till=req_int(data, 'till'))


def _decode_segment_changes(data: dict) -> ChangeSet:
    diff = SegmentDiff(name=req_str(data, 'name'), added=opt_str_list(data, 'added'), removed=opt_str_list(data, 'removed'))
    return ChangeSet(changes=[diff], since=req_int(data, 'since'), till=req_int(data, 'till'))
