from os import environ
from typing import Optional
from urllib.parse import urlparse

import certifi
import urllib3

from flagsync.version import VERSION


def _base_headers(config):
    headers = {'Authorization': 'Bearer ' + (config.sdk_key or ''), 'User-Agent': 'FlagSyncPython/' + VERSION}

    if isinstance(config.machine_name, str) and config.machine_name != "":
        headers['FlagSync-Machine-Name'] = config.machine_name

    return headers


def _http_factory(config):
    return HTTPFactory(_base_headers(config), config.http)


class HTTPFactory:
    def __init__(self, base_headers, http_config, override_read_timeout=None):
        self.__base_headers = base_headers
        self.__http_config = http_config
        self.__timeout = urllib3.Timeout(connect=http_config.connect_timeout, read=http_config.read_timeout if override_read_timeout is None else override_read_timeout)

    @property
    def base_headers(self):
        return self.__base_headers

    @property
    def http_config(self):
        return self.__http_config

    @property
    def timeout(self):
        return self.__timeout

    def create_pool_manager(self, num_pools, target_base_uri):
        proxy_url = self.__http_config.http_proxy or _get_proxy_url(target_base_uri)

        if self.__http_config.disable_ssl_verification:
            cert_reqs = 'CERT_NONE'
            ca_certs = None
        else:
            cert_reqs = 'CERT_REQUIRED'
            ca_certs = self.__http_config.ca_certs or certifi.where()

        if proxy_url is None:
            return urllib3.PoolManager(num_pools=num_pools, cert_reqs=cert_reqs, ca_certs=ca_certs)

        url = urllib3.util.parse_url(proxy_url)
        proxy_headers = None
        if url.auth is not None:
            proxy_headers = urllib3.util.make_headers(proxy_basic_auth=url.auth)
        return urllib3.ProxyManager(proxy_url, num_pools=num_pools, cert_reqs=cert_reqs, ca_certs=ca_certs, proxy_headers=proxy_headers)


def _get_proxy_url(target_base_uri) -> Optional[str]:
    """
    Picks the proxy for a target URI from the https_proxy/http_proxy environment variables,
    honoring a no_proxy list of host suffixes ('*' disables proxying entirely).
    """
    if target_base_uri is None:
        return None

    parsed = urlparse(target_base_uri)
    host = parsed.hostname or ''
    proxy_url = environ.get('https_proxy') if parsed.scheme == 'https' else environ.get('http_proxy')
    no_proxy = environ.get('no_proxy', '').strip()

    if proxy_url is None or no_proxy == '*':
        return None

    for entry in no_proxy.split(','):
        entry = entry.strip().split(':')[0]
        if entry != '' and host.endswith(entry):
            return None

    return proxy_url
