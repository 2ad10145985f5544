import mock
import threading
import time

from flagsync.config import Config
from flagsync.data_kind import FLAGS, SEGMENTS
from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.datasource.polling import PollingStore, flags_polling_store, segments_polling_store
from flagsync.impl.util import UnsuccessfulResponseException
from flagsync.repository import InMemoryRepository
from testing.stub_util import MockChangesRequester, make_flag
from testing.sync_util import wait_until

store = None
mock_requester = None
repo = None


def setup_function():
    global mock_requester, repo
    mock_requester = MockChangesRequester()
    repo = InMemoryRepository()

def teardown_function():
    if store is not None:
        store.stop()

def setup_flags_store(config):
    global store
    store = flags_polling_store(config, FlagsFetcher(mock_requester, repo))
    return store

def test_sync_once_merges_and_reports_success():
    mock_requester.set_flags([make_flag('a', 10)], 10)
    assert setup_flags_store(Config("SDK_KEY")).sync_once() == True
    assert repo.get(FLAGS, 'a') is not None
    assert store.running == False

def test_sync_once_reports_failure_without_raising():
    mock_requester.exception = UnsuccessfulResponseException(500)
    assert setup_flags_store(Config("SDK_KEY")).sync_once() == False

# Config won't let you set a refresh interval below the minimum, so the property is mocked

@mock.patch('flagsync.config.Config.features_refresh_interval', new_callable=mock.PropertyMock, return_value=0.1)
def test_polls_repeatedly_once_started(ignore_mock):
    setup_flags_store(Config("SDK_KEY"))
    store.start()
    assert store.running == True
    wait_until(lambda: len(mock_requester.flag_requests) >= 3, 2)

@mock.patch('flagsync.config.Config.features_refresh_interval', new_callable=mock.PropertyMock, return_value=0.1)
def test_picks_up_changes_while_polling(ignore_mock):
    setup_flags_store(Config("SDK_KEY")).start()
    mock_requester.set_flags([make_flag('a', 10)], 10)
    wait_until(lambda: repo.get(FLAGS, 'a') is not None, 2)
    mock_requester.set_flags([make_flag('a', 20, status='ARCHIVED')], 20)
    wait_until(lambda: repo.get(FLAGS, 'a') is None, 2)
    assert repo.get_change_number(FLAGS) == 20

@mock.patch('flagsync.config.Config.features_refresh_interval', new_callable=mock.PropertyMock, return_value=0.1)
def test_error_does_not_stop_polling(ignore_mock):
    mock_requester.exception = UnsuccessfulResponseException(503)
    setup_flags_store(Config("SDK_KEY")).start()
    wait_until(lambda: len(mock_requester.flag_requests) >= 2, 2)
    mock_requester.exception = None
    mock_requester.set_flags([make_flag('a', 10)], 10)
    wait_until(lambda: repo.get(FLAGS, 'a') is not None, 2)

@mock.patch('flagsync.config.Config.features_refresh_interval', new_callable=mock.PropertyMock, return_value=0.1)
def test_stop_ends_polling_and_store_can_restart(ignore_mock):
    setup_flags_store(Config("SDK_KEY")).start()
    wait_until(lambda: len(mock_requester.flag_requests) >= 1, 2)
    store.stop()
    assert store.running == False
    time.sleep(0.15)
    count = len(mock_requester.flag_requests)
    time.sleep(0.3)
    assert len(mock_requester.flag_requests) == count
    store.start()
    wait_until(lambda: len(mock_requester.flag_requests) > count, 2)

def test_start_twice_runs_one_task():
    calls = []
    s = PollingStore("test", 10, lambda: calls.append(1))
    try:
        s.start()
        s.start()
        wait_until(lambda: len(calls) >= 1, 1)
        time.sleep(0.1)
        assert len(calls) == 1
    finally:
        s.stop()

def test_jitter_is_applied_to_every_wait():
    factors = []
    def jitter():
        factors.append(1)
        return 0.01
    s = PollingStore("test", 1, lambda: None, jitter)
    try:
        s.start()
        wait_until(lambda: len(factors) >= 3, 1)
    finally:
        s.stop()

@mock.patch('flagsync.config.Config.segments_refresh_interval', new_callable=mock.PropertyMock, return_value=0.1)
def test_segments_store_polls_referenced_segments(ignore_mock):
    global store
    repo.update(FLAGS, {'a': make_flag('a', 1, segments=['s1'])}, [], 1)
    mock_requester.set_segment('s1', ['k'], 5)
    store = segments_polling_store(Config("SDK_KEY"), SegmentsFetcher(mock_requester, repo))
    store.start()
    wait_until(lambda: repo.get(SEGMENTS, 's1') is not None, 2)
    mock_requester.set_segment('s1', ['k', 'k2'], 9)
    wait_until(lambda: repo.segment_change_number('s1') == 9, 2)
