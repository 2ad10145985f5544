from queue import Empty, Queue

from flagsync.impl.push.notifications import Occupancy
from flagsync.impl.push.occupancy import CONTROL_PRI, CONTROL_SEC, OccupancyKeeper
from flagsync.impl.push.status import PushStatus


def occupancy(channel, publishers, timestamp = 0):
    return Occupancy(channel = channel, publishers = publishers, timestamp = timestamp)

def make_keeper(debounce = 0):
    statuses = Queue()
    return OccupancyKeeper(debounce, statuses.put), statuses

def expect_no_status(statuses, timeout = 0.1):
    try:
        s = statuses.get(True, timeout)
        raise AssertionError("unexpected status %s" % s)
    except Empty:
        pass

def test_available_without_samples():
    keeper, statuses = make_keeper()
    assert keeper.publishers_available == True
    assert keeper.publishers(CONTROL_PRI) is None

def test_down_when_all_channels_reach_zero():
    keeper, statuses = make_keeper()
    keeper.handle(occupancy(CONTROL_PRI, 2, 1))
    keeper.handle(occupancy(CONTROL_SEC, 1, 1))
    expect_no_status(statuses, 0.01)
    keeper.handle(occupancy(CONTROL_PRI, 0, 2))
    expect_no_status(statuses, 0.01)
    keeper.handle(occupancy(CONTROL_SEC, 0, 2))
    assert statuses.get_nowait() == PushStatus.PUSH_SUBSYSTEM_DOWN
    keeper.handle(occupancy(CONTROL_SEC, 1, 3))
    assert statuses.get_nowait() == PushStatus.PUSH_SUBSYSTEM_READY
    assert keeper.publishers(CONTROL_SEC) == 1

def test_repeated_samples_report_once():
    keeper, statuses = make_keeper()
    keeper.handle(occupancy(CONTROL_PRI, 0, 1))
    keeper.handle(occupancy(CONTROL_PRI, 0, 2))
    assert statuses.get_nowait() == PushStatus.PUSH_SUBSYSTEM_DOWN
    expect_no_status(statuses, 0.01)

def test_stale_sample_is_ignored():
    keeper, statuses = make_keeper()
    keeper.handle(occupancy(CONTROL_PRI, 0, 10))
    assert statuses.get_nowait() == PushStatus.PUSH_SUBSYSTEM_DOWN
    keeper.handle(occupancy(CONTROL_PRI, 3, 5))
    assert keeper.publishers(CONTROL_PRI) == 0
    expect_no_status(statuses, 0.01)

def test_change_is_reported_after_debounce():
    keeper, statuses = make_keeper(0.1)
    keeper.handle(occupancy(CONTROL_PRI, 0, 1))
    expect_no_status(statuses, 0.05)
    assert statuses.get(True, 1) == PushStatus.PUSH_SUBSYSTEM_DOWN

def test_flapping_within_debounce_is_not_reported():
    keeper, statuses = make_keeper(0.2)
    keeper.handle(occupancy(CONTROL_PRI, 0, 1))
    keeper.handle(occupancy(CONTROL_PRI, 1, 2))
    expect_no_status(statuses, 0.4)

def test_reset_forgets_samples_and_pending_change():
    keeper, statuses = make_keeper(0.1)
    keeper.handle(occupancy(CONTROL_PRI, 0, 1))
    keeper.reset()
    assert keeper.publishers_available == True
    expect_no_status(statuses, 0.3)

def test_stop_cancels_pending_change():
    keeper, statuses = make_keeper(0.1)
    keeper.handle(occupancy(CONTROL_PRI, 0, 1))
    keeper.stop()
    expect_no_status(statuses, 0.3)
