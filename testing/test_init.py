import pytest

import flagsync
from flagsync.config import Config


def teardown_function():
    flagsync._reset_client()

def test_get_without_config_raises():
    with pytest.raises(flagsync.ClientNotConfiguredError):
        flagsync.get()

def test_set_config_then_get_returns_shared_client():
    flagsync.set_config(Config('SDK_KEY', base_uri = 'http://localhost:1', stream = False))
    flagsync.start_wait = 0
    try:
        client = flagsync.get()
        assert client is flagsync.get()
        assert client.get_sdk_key() == 'SDK_KEY'
    finally:
        flagsync.start_wait = 5

def test_set_config_replaces_client():
    flagsync.start_wait = 0
    try:
        flagsync.set_config(Config('KEY1', base_uri = 'http://localhost:1', stream = False))
        old_client = flagsync.get()
        flagsync.set_config(Config('KEY2', base_uri = 'http://localhost:1', stream = False))
        new_client = flagsync.get()
        assert new_client is not old_client
        assert new_client.get_sdk_key() == 'KEY2'
    finally:
        flagsync.start_wait = 5

def test_reset_client_forgets_config():
    flagsync.set_config(Config('SDK_KEY', base_uri = 'http://localhost:1', stream = False))
    flagsync._reset_client()
    with pytest.raises(flagsync.ClientNotConfiguredError):
        flagsync.get()

def test_entry_points_are_exported():
    for name in ['set_config', 'get', 'Config', 'FlagSyncClient', 'ClientNotConfiguredError']:
        assert name in flagsync.__all__
        assert hasattr(flagsync, name)
