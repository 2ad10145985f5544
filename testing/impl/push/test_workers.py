import time

from flagsync.data_kind import FLAGS, SEGMENTS
from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.push.notifications import FlagKill, FlagUpdate, SegmentUpdate
from flagsync.impl.push.workers import FlagsWorker, SegmentsWorker
from flagsync.impl.util import UnsuccessfulResponseException
from flagsync.repository import InMemoryRepository
from testing.stub_util import MockChangesRequester, make_flag
from testing.sync_util import wait_until

requester = None
repo = None
flags_worker = None
segments_worker = None


def setup_function():
    global requester, repo, flags_worker, segments_worker
    requester = MockChangesRequester()
    repo = InMemoryRepository()
    flags_fetcher = FlagsFetcher(requester, repo)
    segments_fetcher = SegmentsFetcher(requester, repo)
    flags_worker = FlagsWorker(repo, flags_fetcher, segments_fetcher)
    segments_worker = SegmentsWorker(repo, segments_fetcher)

def teardown_function():
    flags_worker.stop()
    segments_worker.stop()

def flag_update(cn):
    return FlagUpdate(channel = 'flags', change_number = cn)

def test_flag_update_fetches_up_to_its_change_number():
    requester.set_flags([make_flag('a', 100)], 100)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: repo.get_change_number(FLAGS) == 100)
    assert requester.flag_requests[0] == (-1, 100)

def test_replayed_notification_causes_one_fetch():
    requester.set_flags([make_flag('a', 100)], 100)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: repo.get_change_number(FLAGS) == 100)
    time.sleep(0.1)
    assert requester.flag_requests == [(-1, 100)]

def test_notification_at_or_below_cursor_is_discarded():
    repo.set_change_number(FLAGS, 100)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    flags_worker.add_to_queue(flag_update(50))
    time.sleep(0.1)
    assert requester.flag_requests == []

def test_kill_notification_also_triggers_fetch():
    requester.set_flags([make_flag('a', 20, killed = True)], 20)
    repo.update(FLAGS, {'a': make_flag('a', 10)}, [], 10)
    flags_worker.start()
    flags_worker.add_to_queue(FlagKill(channel = 'flags', change_number = 20, flag_name = 'a', default_treatment = 'off'))
    wait_until(lambda: repo.get_change_number(FLAGS) == 20)

def test_flag_fetch_pulls_newly_referenced_segments():
    requester.set_flags([make_flag('a', 100, segments = ['s'])], 100)
    requester.set_segment('s', ['k'], 7)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: repo.get(SEGMENTS, 's') is not None)
    assert repo.get(SEGMENTS, 's').keys == frozenset(['k'])

def test_recoverable_failure_is_retried():
    requester.exception = UnsuccessfulResponseException(503)
    requester.set_flags([make_flag('a', 100)], 100)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: len(requester.flag_requests) >= 1)
    requester.exception = None
    wait_until(lambda: repo.get_change_number(FLAGS) == 100, 3)

def test_permanent_failure_is_not_retried():
    requester.exception = UnsuccessfulResponseException(401)
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: len(requester.flag_requests) >= 1)
    time.sleep(1)
    assert len(requester.flag_requests) == 1

def test_notifications_are_dropped_while_stopped():
    requester.set_flags([make_flag('a', 100)], 100)
    flags_worker.add_to_queue(flag_update(100))
    flags_worker.start()
    time.sleep(0.1)
    assert requester.flag_requests == []
    assert flags_worker.running == True
    flags_worker.stop()
    assert flags_worker.running == False
    flags_worker.add_to_queue(flag_update(100))
    time.sleep(0.1)
    assert requester.flag_requests == []

def test_worker_can_be_restarted():
    requester.set_flags([make_flag('a', 100)], 100)
    flags_worker.start()
    flags_worker.stop()
    flags_worker.start()
    flags_worker.add_to_queue(flag_update(100))
    wait_until(lambda: repo.get_change_number(FLAGS) == 100)

def test_segment_update_fetches_referenced_segment():
    repo.update(FLAGS, {'a': make_flag('a', 1, segments = ['s'])}, [], 1)
    requester.set_segment('s', ['k1', 'k2'], 30)
    segments_worker.start()
    segments_worker.add_to_queue(SegmentUpdate(channel = 'segments', change_number = 30, segment_name = 's'))
    wait_until(lambda: repo.segment_change_number('s') == 30)
    assert requester.segment_requests == [('s', -1, 30)]

def test_segment_update_for_unused_segment_is_discarded():
    requester.set_segment('s', ['k1'], 30)
    segments_worker.start()
    segments_worker.add_to_queue(SegmentUpdate(channel = 'segments', change_number = 30, segment_name = 's'))
    time.sleep(0.1)
    assert requester.segment_requests == []

def test_stale_segment_update_is_discarded():
    repo.update(FLAGS, {'a': make_flag('a', 1, segments = ['s'])}, [], 1)
    repo.merge_segment('s', ['k'], [], 30)
    segments_worker.start()
    segments_worker.add_to_queue(SegmentUpdate(channel = 'segments', change_number = 30, segment_name = 's'))
    time.sleep(0.1)
    assert requester.segment_requests == []
