"""
Notifications received over the streaming channel, and the parsing of their wire envelopes.

Every notification is one of a closed set of frozen dataclasses; :data:`Notification` is their
union. Consumers dispatch with ``isinstance`` and treat anything else as a programming error.
"""

import json
from dataclasses import dataclass
from typing import Optional, Union

from flagsync.impl.model.entity import opt_int, opt_str, req_str
from flagsync.impl.util import log

OCCUPANCY_PREFIX = '[?occupancy=metrics.publishers]'

FLAG_UPDATE = 'FLAG_UPDATE'
FLAG_KILL = 'FLAG_KILL'
SEGMENT_UPDATE = 'SEGMENT_UPDATE'
CONTROL = 'CONTROL'

# Control types currently sent by the streaming service. They are advisory; see Synchronizer.
STREAMING_PAUSED = 'STREAMING_PAUSED'
STREAMING_RESUMED = 'STREAMING_RESUMED'
STREAMING_DISABLED = 'STREAMING_DISABLED'

# In-band error codes in this range mean the stream token expired and a new connection will work.
TOKEN_ERROR_CODES = range(40140, 40150)
CLIENT_ERROR_CODES = range(40000, 50000)


@dataclass(frozen=True)
class FlagUpdate:
    channel: str
    change_number: int
    client_id: Optional[str] = None
    timestamp: int = 0


@dataclass(frozen=True)
class FlagKill:
    channel: str
    change_number: int
    flag_name: str
    default_treatment: str
    client_id: Optional[str] = None
    timestamp: int = 0


@dataclass(frozen=True)
class SegmentUpdate:
    channel: str
    change_number: int
    segment_name: str
    client_id: Optional[str] = None
    timestamp: int = 0


@dataclass(frozen=True)
class Control:
    channel: str
    control_type: str
    client_id: Optional[str] = None
    timestamp: int = 0


@dataclass(frozen=True)
class Occupancy:
    channel: str
    publishers: int
    client_id: Optional[str] = None
    timestamp: int = 0


@dataclass(frozen=True)
class StreamError:
    code: int
    status_code: int
    message: str
    href: Optional[str] = None
    channel: str = ''
    client_id: Optional[str] = None
    timestamp: int = 0

    @property
    def retryable(self) -> bool:
        if self.code in TOKEN_ERROR_CODES:
            return True
        return self.code not in CLIENT_ERROR_CODES


Notification = Union[FlagUpdate, FlagKill, SegmentUpdate, Control, Occupancy, StreamError]


def parse_message(data: str) -> Optional[Notification]:
    """
    Parses the payload of a ``message`` event.

    :return: the notification, or None for a frame that carries nothing usable (no inner data, or
      an unknown notification type)
    :raises ValueError: if the payload or its inner data is not valid JSON of the expected shape
    """
    envelope = json.loads(data)
    if not isinstance(envelope, dict):
        raise ValueError('stream envelope is not an object')
    inner = envelope.get('data')
    if not isinstance(inner, str):
        log.debug("Discarding stream frame without data field")
        return None

    channel = opt_str(envelope, 'channel') or ''
    client_id = opt_str(envelope, 'clientId')
    timestamp = opt_int(envelope, 'timestamp') or 0
    body = json.loads(inner)
    if not isinstance(body, dict):
        raise ValueError('notification data is not an object')

    try:
        if channel.startswith(OCCUPANCY_PREFIX):
            return Occupancy(channel=channel[len(OCCUPANCY_PREFIX):], publishers=int(body['metrics']['publishers']), client_id=client_id, timestamp=timestamp)

        notification_type = body.get('type')
        if notification_type == FLAG_UPDATE:
            return FlagUpdate(channel=channel, change_number=int(body['changeNumber']), client_id=client_id, timestamp=timestamp)
        if notification_type == FLAG_KILL:
            return FlagKill(
                channel=channel,
                change_number=int(body['changeNumber']),
                flag_name=req_str(body, 'flagName'),
                default_treatment=req_str(body, 'defaultTreatment'),
                client_id=client_id,
                timestamp=timestamp,
            )
        if notification_type == SEGMENT_UPDATE:
            return SegmentUpdate(channel=channel, change_number=int(body['changeNumber']), segment_name=req_str(body, 'segmentName'), client_id=client_id, timestamp=timestamp)
        if notification_type == CONTROL:
            return Control(channel=channel, control_type=req_str(body, 'controlType'), client_id=client_id, timestamp=timestamp)
    except (KeyError, TypeError) as e:
        raise ValueError('missing or invalid notification property: %s' % e) from e

    log.warning("Ignoring stream notification of unknown type: %s", notification_type)
    return None


def parse_error(data: str) -> StreamError:
    """
    Parses the payload of an ``error`` event.

    :raises ValueError: if the payload is not valid JSON of the expected shape
    """
    body = json.loads(data)
    if not isinstance(body, dict):
        raise ValueError('stream error payload is not an object')
    return StreamError(code=opt_int(body, 'code') or 0, status_code=opt_int(body, 'statusCode') or 0, message=opt_str(body, 'message') or '', href=opt_str(body, 'href'))
