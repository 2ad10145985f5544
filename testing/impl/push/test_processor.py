import mock
import pytest

from flagsync.data_kind import FLAGS
from flagsync.impl.push.notifications import Control, FlagKill, FlagUpdate, Occupancy, SegmentUpdate, StreamError
from flagsync.impl.push.processor import NotificationProcessor
from flagsync.impl.util import RepositoryError
from flagsync.repository import InMemoryRepository
from testing.stub_util import make_flag

repo = None
flags_worker = None
segments_worker = None
keeper = None
controls = None
processor = None


def setup_function():
    global repo, flags_worker, segments_worker, keeper, controls, processor
    repo = InMemoryRepository()
    flags_worker = mock.MagicMock()
    segments_worker = mock.MagicMock()
    keeper = mock.MagicMock()
    controls = []
    processor = NotificationProcessor(repo, flags_worker, segments_worker, keeper, controls.append, 'me')

def test_flag_update_goes_to_flags_worker():
    n = FlagUpdate(channel = 'flags', change_number = 10)
    processor.process(n)
    flags_worker.add_to_queue.assert_called_once_with(n)
    segments_worker.add_to_queue.assert_not_called()

def test_segment_update_goes_to_segments_worker():
    n = SegmentUpdate(channel = 'segments', change_number = 10, segment_name = 's')
    processor.process(n)
    segments_worker.add_to_queue.assert_called_once_with(n)
    flags_worker.add_to_queue.assert_not_called()

def test_kill_is_applied_before_fetch_is_queued():
    repo.update(FLAGS, {'f': make_flag('f', 10, default_treatment = 'on')}, [], 10)
    seen = []
    flags_worker.add_to_queue.side_effect = lambda n: seen.append(repo.get(FLAGS, 'f').killed)
    n = FlagKill(channel = 'flags', change_number = 20, flag_name = 'f', default_treatment = 'off')
    processor.process(n)
    assert seen == [True]
    assert repo.get(FLAGS, 'f').default_treatment == 'off'
    flags_worker.add_to_queue.assert_called_once_with(n)

def test_kill_for_unknown_flag_still_queues_fetch():
    n = FlagKill(channel = 'flags', change_number = 20, flag_name = 'unknown', default_treatment = 'off')
    processor.process(n)
    assert repo.get(FLAGS, 'unknown') is None
    flags_worker.add_to_queue.assert_called_once_with(n)

def test_repository_failure_during_kill_still_queues_fetch():
    failing = mock.MagicMock()
    failing.kill.side_effect = RepositoryError('down')
    p = NotificationProcessor(failing, flags_worker, segments_worker, keeper, controls.append)
    n = FlagKill(channel = 'flags', change_number = 20, flag_name = 'f', default_treatment = 'off')
    p.process(n)
    flags_worker.add_to_queue.assert_called_once_with(n)

def test_occupancy_goes_to_keeper():
    n = Occupancy(channel = 'control_pri', publishers = 0)
    processor.process(n)
    keeper.handle.assert_called_once_with(n)

def test_control_is_forwarded():
    n = Control(channel = 'control_pri', control_type = 'STREAMING_PAUSED')
    processor.process(n)
    assert controls == [n]
    flags_worker.add_to_queue.assert_not_called()

def test_stream_error_is_only_logged():
    processor.process(StreamError(code = 40142, status_code = 401, message = 'expired'))
    flags_worker.add_to_queue.assert_not_called()
    segments_worker.add_to_queue.assert_not_called()

def test_own_notifications_are_ignored():
    processor.process(FlagUpdate(channel = 'flags', change_number = 10, client_id = 'me'))
    flags_worker.add_to_queue.assert_not_called()

def test_unknown_notification_type_is_an_error():
    with pytest.raises(TypeError):
        processor.process(mock.MagicMock(client_id = None))
