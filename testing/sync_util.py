import time


def wait_until(condition, timeout=5, interval=0.05, description=None):
    """Polls ``condition`` until it returns something truthy, and returns that value."""
    deadline = time.monotonic() + timeout
    while True:
        result = condition()
        if result:
            return result
        if time.monotonic() >= deadline:
            raise AssertionError("timed out after %ss waiting for %s" % (timeout, description or getattr(condition, '__name__', 'condition')))  # pragma: no cover
        time.sleep(interval)
