"""
This submodule contains the :class:`Config` class for custom configuration of the synchronization
client.
"""

from typing import Optional

from flagsync.impl.util import log
from flagsync.interfaces import Repository
from flagsync.repository import InMemoryRepository

MIN_REFRESH_INTERVAL = 5.0


class HTTPConfig:
    """Advanced HTTP configuration options.

    This class groups together HTTP/HTTPS-related configuration properties that rarely need to be changed.
    If you need to set these, construct an ``HTTPConfig`` instance and pass it as the ``http`` parameter when
    you construct the main :class:`Config`.
    """

    def __init__(
        self,
        connect_timeout: float = 10,
        read_timeout: float = 15,
        http_proxy: Optional[str] = None,
        ca_certs: Optional[str] = None,
        disable_ssl_verification: bool = False,
    ):
        """
        :param connect_timeout: The connect timeout for network connections in seconds.
        :param read_timeout: The read timeout for network connections in seconds. The streaming
          connection uses its own, much longer, read timeout.
        :param http_proxy: Use a proxy for all connections. This is the full URI of the proxy; for
          example: http://my-proxy.com:1234. Setting this overrides any proxy specified by an
          environment variable.
        :param ca_certs: If using a custom certificate authority, set this to the file path of the
          certificate bundle.
        :param disable_ssl_verification: If true, completely disables SSL verification and certificate
          verification for secure requests. This is unsafe and should not be used in a production environment.
        """
        self.__connect_timeout = connect_timeout
        self.__read_timeout = read_timeout
        self.__http_proxy = http_proxy
        self.__ca_certs = ca_certs
        self.__disable_ssl_verification = disable_ssl_verification

    @property
    def connect_timeout(self) -> float:
        return self.__connect_timeout

    @property
    def read_timeout(self) -> float:
        return self.__read_timeout

    @property
    def http_proxy(self) -> Optional[str]:
        return self.__http_proxy

    @property
    def ca_certs(self) -> Optional[str]:
        return self.__ca_certs

    @property
    def disable_ssl_verification(self) -> bool:
        return self.__disable_ssl_verification


class Config:
    """Configuration options for :class:`flagsync.client.FlagSyncClient`."""

    def __init__(
        self,
        sdk_key: str,
        base_uri: str = 'https://sdk.flagsync.io/api',
        stream_uri: str = 'https://streaming.flagsync.io/event-stream',
        stream: bool = True,
        features_refresh_interval: float = 60,
        segments_refresh_interval: float = 60,
        initial_reconnect_delay: float = 1,
        max_reconnect_delay: float = 30,
        stream_connect_timeout: float = 10,
        occupancy_debounce: float = 1,
        repository: Optional[Repository] = None,
        machine_name: Optional[str] = None,
        client_id: Optional[str] = None,
        http: HTTPConfig = HTTPConfig(),
    ):
        """
        :param sdk_key: The SDK key. This is always required.
        :param base_uri: The base URL of the changes API that serves flag and segment diffs.
        :param stream_uri: The URL of the server-sent event stream that pushes change notifications.
        :param stream: Whether the streaming channel should be used at all. When false, the client
          only polls.
        :param features_refresh_interval: The number of seconds between flag polls while in polling
          mode. Each actual wait is randomized between half of this value and the full value. The
          minimum is 5 seconds.
        :param segments_refresh_interval: The number of seconds between segment polls while in
          polling mode, randomized the same way. The minimum is 5 seconds.
        :param initial_reconnect_delay: The initial delay (in seconds) before reconnecting the stream
          or retrying the initial synchronization. The delay grows exponentially, with jitter, on
          consecutive failures.
        :param max_reconnect_delay: The upper bound (in seconds) for the reconnect backoff.
        :param stream_connect_timeout: How long (in seconds) to wait for the streaming connection to be
          confirmed before giving up and falling back to polling.
        :param occupancy_debounce: How long (in seconds) a change in publisher availability must persist
          before the client switches between streaming and polling.
        :param repository: A :class:`flagsync.interfaces.Repository` implementation. Defaults to an
          in-memory repository.
        :param machine_name: Optional name of this host, sent as a request header.
        :param client_id: The id this client uses when publishing; stream notifications carrying the
          same id are ignored.
        :param http: Optional properties for customizing HTTP behavior. See :class:`HTTPConfig`.
        """
        self.__sdk_key = sdk_key
        self.__base_uri = base_uri.rstrip('/')
        self.__stream_uri = stream_uri.rstrip('/')
        self.__stream = stream
        self.__features_refresh_interval = max(features_refresh_interval, MIN_REFRESH_INTERVAL)
        self.__segments_refresh_interval = max(segments_refresh_interval, MIN_REFRESH_INTERVAL)
        self.__initial_reconnect_delay = initial_reconnect_delay
        self.__max_reconnect_delay = max(max_reconnect_delay, initial_reconnect_delay)
        self.__stream_connect_timeout = stream_connect_timeout
        self.__occupancy_debounce = max(occupancy_debounce, 0)
        self.__repository = InMemoryRepository() if repository is None else repository
        self.__machine_name = machine_name
        self.__client_id = client_id
        self.__http = http
        self._validate()

    @property
    def sdk_key(self) -> Optional[str]:
        return self.__sdk_key

    @property
    def base_uri(self) -> str:
        return self.__base_uri

    @property
    def stream_uri(self) -> str:
        return self.__stream_uri

    @property
    def stream(self) -> bool:
        return self.__stream

    @property
    def features_refresh_interval(self) -> float:
        return self.__features_refresh_interval

    @property
    def segments_refresh_interval(self) -> float:
        return self.__segments_refresh_interval

    @property
    def initial_reconnect_delay(self) -> float:
        return self.__initial_reconnect_delay

    @property
    def max_reconnect_delay(self) -> float:
        return self.__max_reconnect_delay

    @property
    def stream_connect_timeout(self) -> float:
        return self.__stream_connect_timeout

    @property
    def occupancy_debounce(self) -> float:
        return self.__occupancy_debounce

    @property
    def repository(self) -> Repository:
        return self.__repository

    @property
    def machine_name(self) -> Optional[str]:
        return self.__machine_name

    @property
    def client_id(self) -> Optional[str]:
        return self.__client_id

    @property
    def http(self) -> HTTPConfig:
        return self.__http

    def _validate(self):
        if self.sdk_key is None or self.sdk_key == '':
            log.warning("Missing or blank sdk_key.")


__all__ = ['Config', 'HTTPConfig']
