from threading import Event, Lock, Thread, current_thread
from typing import Callable, Optional

from ld_eventsource import SSEClient
from ld_eventsource.actions import Event as SSEEvent
from ld_eventsource.actions import Fault, Start
from ld_eventsource.config import ConnectStrategy, ErrorStrategy
from ld_eventsource.errors import HTTPContentTypeError, HTTPStatusError

from flagsync.impl.http import HTTPFactory, _http_factory
from flagsync.impl.push.notifications import parse_error, parse_message
from flagsync.impl.push.status import ConnectionState, PushStatus
from flagsync.impl.util import (http_error_message, is_http_error_recoverable,
                                log)

# The server sends keepalive comments well within this window, so a read that takes longer means
# the connection is dead.
stream_read_timeout = 70

# How long close() waits for the reader thread to let go of the connection.
CLOSE_JOIN_TIMEOUT = 1

PERMANENT_STATUSES = (400, 401, 403)


class StreamingClient:
    """
    Owns one streaming connection at a time. Incoming frames are parsed into notifications and
    handed to ``processor``; lifecycle changes are reported to ``on_status`` as :class:`PushStatus`
    values. The client never reconnects by itself.
    """

    def __init__(self, config, processor, on_status: Callable[[PushStatus], None]):
        self._config = config
        self._processor = processor
        self._on_status = on_status
        self._lock = Lock()
        self._state = ConnectionState.DISCONNECTED
        self._sse: Optional[SSEClient] = None
        self._thread: Optional[Thread] = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def start(self, uri: str) -> bool:
        """
        Opens the connection and blocks until it is confirmed or has failed.

        :return: True if the client is now connected
        """
        first_result = Event()
        with self._lock:
            if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                log.warning("Streaming client already started")
                return self._state == ConnectionState.CONNECTED
            self._state = ConnectionState.CONNECTING
            sse = self._create_sse_client(uri)
            thread = Thread(target=self._run, args=(sse, first_result), name="flagsync.push.streaming")
            thread.daemon = True
            self._sse = sse
            self._thread = thread

        log.info("Connecting to stream: %s", uri)
        thread.start()
        if not first_result.wait(self._config.stream_connect_timeout):
            log.warning("Stream connection was not confirmed within %s seconds, will reconnect", self._config.stream_connect_timeout)
            self.close()
            self._on_status(PushStatus.PUSH_RETRYABLE_ERROR)
            return False
        return self.connected

    def close(self):
        """
        Releases the connection. Idempotent, callable from any thread, and always leaves the client
        disconnected.
        """
        with self._lock:
            sse = self._sse
            thread = self._thread
            was_connected = self._state == ConnectionState.CONNECTED
            self._sse = None
            self._thread = None
            self._state = ConnectionState.DISCONNECTED

        if sse is not None:
            log.info("Closing streaming connection")
            sse.close()
        if thread is not None and thread is not current_thread():
            thread.join(CLOSE_JOIN_TIMEOUT)
        if was_connected:
            self._on_status(PushStatus.PUSH_DISCONNECTED)

    def _create_sse_client(self, uri: str) -> SSEClient:
        # the stream needs a longer read timeout than the rest of the requests
        http_factory = _http_factory(self._config)
        stream_http_factory = HTTPFactory(http_factory.base_headers, http_factory.http_config, override_read_timeout=stream_read_timeout)
        return SSEClient(
            connect=ConnectStrategy.http(
                url=uri, headers=http_factory.base_headers, pool=stream_http_factory.create_pool_manager(1, uri), urllib3_request_options={"timeout": stream_http_factory.timeout}
            ),
            error_strategy=ErrorStrategy.always_continue(),  # failures surface as a Fault and end the loop below
            initial_retry_delay=self._config.initial_reconnect_delay,
            logger=log,
        )

    def _is_current(self, sse: SSEClient) -> bool:
        with self._lock:
            return self._sse is sse

    def _run(self, sse: SSEClient, first_result: Event):
        try:
            for action in sse.all:
                if not self._is_current(sse):
                    break
                if isinstance(action, Start):
                    self._on_connected(sse, first_result)
                elif isinstance(action, SSEEvent):
                    if not self._handle_event(sse, action):
                        break
                elif isinstance(action, Fault):
                    self._handle_fault(sse, action.error)
                    break
        except Exception as e:
            log.exception("Unexpected error on streaming thread: %s" % e)
            self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
        finally:
            first_result.set()
            sse.close()

    def _on_connected(self, sse: SSEClient, first_result: Event):
        with self._lock:
            if self._sse is not sse:
                return
            self._state = ConnectionState.CONNECTED
        log.info("Streaming connection established")
        first_result.set()
        self._on_status(PushStatus.PUSH_CONNECTED)

    # Returns False if the connection must be abandoned
    def _handle_event(self, sse: SSEClient, event: SSEEvent) -> bool:
        if event.event == 'error':
            try:
                error = parse_error(event.data)
            except ValueError as e:
                log.warning("Received unreadable error event on stream: %s", e)
                self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
                return False
            if error.retryable:
                log.warning("Stream error %d (%s) - will reconnect", error.code, error.message)
                self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
            else:
                log.error("Stream error %d (%s) - giving up permanently", error.code, error.message)
                self._fail(sse, PushStatus.PUSH_NONRETRYABLE_ERROR)
            return False

        if event.event != 'message':
            log.debug("Ignoring stream event of type %s", event.event)
            return True

        try:
            notification = parse_message(event.data)
        except ValueError as e:
            log.warning("Discarding malformed stream frame: %s", e)
            return True
        if notification is not None:
            try:
                self._processor.process(notification)
            except Exception as e:
                log.exception("Unexpected error while processing %s: %s" % (notification, e))
        return True

    def _handle_fault(self, sse: SSEClient, error: Optional[Exception]):
        if not self._is_current(sse):
            return  # deliberately closed
        if error is None:
            log.info("Stream closed by the server")
            self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
        elif isinstance(error, HTTPStatusError):
            message = http_error_message(error.status, "stream connection", "will reconnect")
            if error.status in PERMANENT_STATUSES or not is_http_error_recoverable(error.status):
                log.error(message)
                self._fail(sse, PushStatus.PUSH_NONRETRYABLE_ERROR)
            else:
                log.warning(message)
                self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
        elif isinstance(error, HTTPContentTypeError):
            log.warning("Stream responded with unexpected content type: %s", error)
            self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)
        else:
            # no stacktrace here; for a typical connection error it is a long tour of urllib3 internals
            log.warning("Error on stream connection: %s, will reconnect", error)
            self._fail(sse, PushStatus.PUSH_RETRYABLE_ERROR)

    def _fail(self, sse: SSEClient, status: PushStatus):
        with self._lock:
            if self._sse is not sse:
                return
            self._state = ConnectionState.ERRORED
        self._on_status(status)
