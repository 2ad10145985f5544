import logging
from urllib.parse import urlparse, urlunparse

from flagsync.impl.http import _base_headers


log = logging.getLogger('flagsync.util')

# 4xx statuses that are worth retrying; every other 4xx is treated as permanent
_RETRYABLE_STATUSES = [408, 429]


def _headers(config):
    base_headers = _base_headers(config)
    base_headers.update({'Content-Type': "application/json"})
    return base_headers


class UnsuccessfulResponseException(Exception):
    def __init__(self, status):
        super(UnsuccessfulResponseException, self).__init__("HTTP error %d" % status)
        self._status = status

    @property
    def status(self):
        return self._status


class FetchError(Exception):
    """
    Raised by a diff fetcher when changes could not be retrieved or merged. The repository is left
    in its last good state whenever this is raised.
    """

    def __init__(self, message, status=None, cause=None):
        super(FetchError, self).__init__(message)
        self._status = status
        self._cause = cause

    @property
    def status(self):
        """The HTTP status of the failed request, or None for network and data errors."""
        return self._status

    @property
    def cause(self):
        return self._cause

    @property
    def recoverable(self) -> bool:
        return self._status is None or is_http_error_recoverable(self._status)


class RepositoryError(Exception):
    """
    Raised by a repository backend that could not complete an operation, for instance because an
    external store is unreachable. Callers treat this as transient.
    """


def throw_if_unsuccessful_response(resp):
    if resp.status >= 400:
        raise UnsuccessfulResponseException(resp.status)


def is_http_error_recoverable(status):
    if status >= 400 and status < 500:
        return status in _RETRYABLE_STATUSES
    return True


def http_error_description(status):
    return "HTTP error %d%s" % (status, " (invalid SDK key)" if (status == 401 or status == 403) else "")


def http_error_message(status, context, retryable_message="will retry"):
    return "Received %s for %s - %s" % (http_error_description(status), context, retryable_message if is_http_error_recoverable(status) else "giving up permanently")


def redact_password(url: str) -> str:
    """
    Replace any embedded password in the provided URL with 'xxxx', so that a store URL can be
    logged safely.
    """
    parts = urlparse(url)
    if parts.password is None:
        return url

    updated = parts.netloc.replace(parts.password, "xxxx")
    parts = parts._replace(netloc=updated)

    return urlunparse(parts)
