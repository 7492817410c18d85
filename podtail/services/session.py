import json
import logging
from enum import Enum

from . import identity as ident
from .buffer import Line, LineKind
from .stream import EventSource

log = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = 'Connection error'


class SessionState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    STREAMING = 'streaming'
    ERROR = 'error'
    CLOSED = 'closed'


class MessageDecodeError(ValueError):
    pass


def _require_str(obj, field):
    value = obj.get(field)
    if not isinstance(value, str):
        raise MessageDecodeError(f'{field!r} must be a string')
    return value


def decode_message(payload):
    """Decode one event payload into ``(line, replace_last)``.

    Data messages look like ``{"row", "timestamp", "replaceLastRow"}``, system
    notices like ``{"message", "timestamp"}``. An explicit ``type`` field
    (``data``/``system``) wins over field inference.
    """
    try:
        obj = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MessageDecodeError(f'payload is not JSON: {exc}') from exc
    if not isinstance(obj, dict):
        raise MessageDecodeError('payload is not a JSON object')

    kind = obj.get('type')
    if kind is None:
        if 'row' in obj:
            kind = 'data'
        elif 'message' in obj:
            kind = 'system'
    kind = kind.lower() if isinstance(kind, str) else kind

    if kind == 'data':
        replace_last = obj.get('replaceLastRow', False)
        if not isinstance(replace_last, bool):
            raise MessageDecodeError("'replaceLastRow' must be a boolean")
        line = Line(_require_str(obj, 'row'), _require_str(obj, 'timestamp'), LineKind.DATA)
        return line, replace_last
    if kind == 'system':
        line = Line(_require_str(obj, 'message'), _require_str(obj, 'timestamp'), LineKind.SYSTEM)
        return line, False
    raise MessageDecodeError(f'unknown message kind {kind!r}')


class StreamSession:
    """One live connection to the log stream of one application.

    The session mutates the viewer's buffer and scroll policy under the
    viewer's lock. Once ``close()`` has run, nothing the transport still
    delivers reaches the buffer.
    """

    def __init__(self, target, buffer, scroll, lock, url, params_key='application',
                 headers=None, retry=3.0, connect_timeout=10, source_factory=EventSource):
        self.target = target
        self.state = SessionState.IDLE
        self._buffer = buffer
        self._scroll = scroll
        self._lock = lock
        self._source = source_factory(
            url,
            params={params_key: ident.key(target)},
            headers=headers,
            on_message=lambda event: self.handle_message(event.data),
            on_error=self.handle_error,
            retry=retry,
            connect_timeout=connect_timeout,
            name=f'stream-{ident.label(target)}',
        )

    @property
    def closed(self):
        return self.state is SessionState.CLOSED

    def start(self):
        if self.state is not SessionState.IDLE:
            return
        self.state = SessionState.CONNECTING
        log.info('Streaming logs for %s', ident.label(self.target))
        self._source.start()

    def close(self):
        """Mark the session closed and stop its transport without waiting on it.

        Callers hold the viewer lock.
        """
        if self.closed:
            return
        self.state = SessionState.CLOSED
        self._source.close()
        log.info('Closed stream for %s', ident.label(self.target))

    def handle_message(self, payload):
        with self._lock:
            if self.closed:
                return False
            # Any delivered event proves the connection is live.
            self.state = SessionState.STREAMING
            try:
                line, replace_last = decode_message(payload)
            except MessageDecodeError as exc:
                log.debug('Dropping undecodable message from %s: %s', ident.label(self.target), exc)
                return False
            if replace_last:
                self._buffer.replace_last(line)
            else:
                self._buffer.append(line)
            self._scroll.after_mutation(self._buffer.revision)
            return True

    def handle_error(self, exc=None):
        with self._lock:
            if self.closed:
                return False
            self.state = SessionState.ERROR
            self._buffer.append(Line.system(CONNECTION_ERROR_MESSAGE))
            self._scroll.after_mutation(self._buffer.revision)
            return True
