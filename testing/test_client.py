from queue import Queue
import threading

from flagsync.client import FlagSyncClient
from flagsync.config import Config
from flagsync.data_kind import FLAGS
from flagsync.interfaces import SyncMode
from flagsync.repository import InMemoryRepository
from testing.http_util import JsonResponse, start_server
from testing.stub_util import (MockChangesRequester, make_flag, make_flag_kill_event, make_flag_update_event,
                               make_occupancy_event, stream_content)
from testing.sync_util import wait_until

start_wait = 5


def make_requester():
    requester = MockChangesRequester()
    requester.set_flags([make_flag('a', 100, segments = ['s'], default_treatment = 'on')], 100)
    requester.set_segment('s', ['k1', 'k2'], 50)
    return requester

def test_client_is_ready_after_start_wait():
    with FlagSyncClient(Config('SDK_KEY', stream = False), start_wait = start_wait, requester = make_requester()) as client:
        assert client.is_ready() == True
        assert client.get_sdk_key() == 'SDK_KEY'
        assert client.get_flag('a').change_number == 100
        assert client.get_segment('s').contains('k1')
        assert client.get_flag('missing') is None
        assert client.sync_mode() in (SyncMode.OFF, SyncMode.POLLING)

def test_client_does_not_block_with_zero_start_wait():
    requester = make_requester()
    requester.exception = OSError('not reachable')
    client = FlagSyncClient(Config('SDK_KEY', stream = False, initial_reconnect_delay = 0.01), start_wait = 0, requester = requester)
    try:
        assert client.is_ready() == False
        assert client.wait_ready(0.1) == False
    finally:
        client.close()

def test_wait_ready_after_late_start():
    requester = make_requester()
    requester.exception = OSError('not reachable')
    client = FlagSyncClient(Config('SDK_KEY', stream = False, initial_reconnect_delay = 0.01), start_wait = 0, requester = requester)
    try:
        wait_until(lambda: len(requester.flag_requests) >= 1)
        requester.exception = None
        assert client.wait_ready(start_wait) == True
    finally:
        client.close()

def test_sync_mode_listener():
    modes = Queue()
    client = FlagSyncClient(Config('SDK_KEY', stream = False), start_wait = 0, requester = make_requester())
    client.add_sync_mode_listener(modes.put)
    try:
        wait_until(lambda: client.sync_mode() == SyncMode.POLLING)
    finally:
        client.close()
    assert client.sync_mode() == SyncMode.OFF

def test_close_is_idempotent_and_keeps_data_readable():
    client = FlagSyncClient(Config('SDK_KEY', stream = False), start_wait = start_wait, requester = make_requester())
    client.close()
    client.close()
    assert client.get_flag('a') is not None

def test_close_stops_background_threads():
    before = set(threading.enumerate())
    client = FlagSyncClient(Config('SDK_KEY', stream = False), start_wait = start_wait, requester = make_requester())
    wait_until(lambda: client.sync_mode() == SyncMode.POLLING)
    client.close()
    wait_until(lambda: all(not t.is_alive() for t in set(threading.enumerate()) - before))

def test_custom_repository_is_used():
    repo = InMemoryRepository()
    with FlagSyncClient(Config('SDK_KEY', stream = False, repository = repo), start_wait = start_wait, requester = make_requester()) as client:
        assert client.repository is repo
        assert repo.get(FLAGS, 'a') is not None

def test_polling_over_http():
    with start_server() as server:
        server.for_path('/api/flagChanges', JsonResponse({'changes': [make_flag('a', 10)], 'since': -1, 'till': 10}))
        server.for_path('/api/segmentChanges/s', JsonResponse({'name': 's', 'added': [], 'removed': [], 'since': -1, 'till': -1}))
        with FlagSyncClient(Config('SDK_KEY', base_uri = server.uri + '/api', stream = False), start_wait = start_wait) as client:
            assert client.is_ready() == True
            assert client.get_flag('a').change_number == 10

def test_streaming_end_to_end():
    requester = make_requester()
    with start_server() as server:
        with stream_content() as stream:
            server.for_path('/sse', stream)
            config = Config('SDK_KEY', stream_uri = server.uri + '/sse', occupancy_debounce = 0)
            with FlagSyncClient(config, start_wait = start_wait, requester = requester) as client:
                assert client.is_ready() == True
                wait_until(lambda: client.sync_mode() == SyncMode.STREAMING)

                # a notification for the cursor already held is a no-op
                count = len(requester.flag_requests)
                stream.push(make_flag_update_event(100))

                requester.set_flags([make_flag('a', 100, segments = ['s']), make_flag('b', 120)], 120)
                stream.push(make_flag_update_event(120))
                wait_until(lambda: client.get_flag('b') is not None)
                assert requester.flag_requests[count] == (100, 120)

                stream.push(make_flag_kill_event('a', 'off', 130))
                wait_until(lambda: client.get_flag('a').killed)
                assert client.get_flag('a').default_treatment == 'off'

                stream.push(make_occupancy_event('control_pri', 0))
                wait_until(lambda: client.sync_mode() == SyncMode.POLLING)
                stream.push(make_occupancy_event('control_pri', 1, timestamp = 2000))
                wait_until(lambda: client.sync_mode() == SyncMode.STREAMING)
