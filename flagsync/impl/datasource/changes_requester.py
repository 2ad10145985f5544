"""
Default implementation of the "fetch changes since cursor" requests.
"""

import json
from typing import Optional
from urllib import parse

import urllib3

from flagsync.impl.http import _http_factory
from flagsync.impl.util import _headers, log, throw_if_unsuccessful_response
from flagsync.interfaces import ChangesRequester
from flagsync.data_kind import FLAGS, SEGMENTS


class ChangesRequesterImpl(ChangesRequester):
    def __init__(self, config):
        self._http = _http_factory(config).create_pool_manager(1, config.base_uri)
        self._config = config

    def fetch_flag_changes(self, since: int, till: Optional[int] = None) -> dict:
        return self._get(self._config.base_uri + FLAGS.request_api_path, since, till)

    def fetch_segment_changes(self, name: str, since: int, till: Optional[int] = None) -> dict:
        uri = self._config.base_uri + SEGMENTS.request_api_path + parse.quote(name, safe='')
        return self._get(uri, since, till)

    def _get(self, base, since, till):
        query = {'since': since}
        if till is not None:
            query['till'] = till
        uri = '%s?%s' % (base, parse.urlencode(query))
        hdrs = _headers(self._config)
        hdrs['Accept-Encoding'] = 'gzip'
        r = self._http.request('GET', uri, headers=hdrs, timeout=urllib3.Timeout(connect=self._config.http.connect_timeout, read=self._config.http.read_timeout), retries=1)
        throw_if_unsuccessful_response(r)
        data = json.loads(r.data.decode('UTF-8'))
        log.debug("%s response status:[%d]", uri, r.status)
        return data

    def close(self):
        self._http.clear()
