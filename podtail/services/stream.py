"""
EventSource-style Server-Sent-Events client on top of requests.

The viewer relies on its transport for liveness: a dropped connection or a
network error is reported through ``on_error`` and then retried after
``retry`` seconds (the server may change the delay with a ``retry:`` field),
resending the last seen event id as ``Last-Event-ID``. An HTTP error status or
a response that is not ``text/event-stream`` fails the connection for good,
as browsers do.

Bytes are read with ``read1`` so an event is handed over as soon as it
arrives, whether the body is chunked or delimited by connection close.
``close()`` shuts the socket down instead of closing the response, which
wakes a reader blocked on a quiet stream; the reader thread then releases the
response itself.
"""
import codecs
import logging
import re
import socket
import threading
from dataclasses import dataclass
from typing import Optional

import requests

log = logging.getLogger(__name__)

DEFAULT_RETRY_SECONDS = 3.0
READ_SIZE = 8192

_LINE_END = re.compile(r'\r\n|\r|\n')


class StreamError(Exception):
    """The endpoint refused to stream; no reconnection is attempted."""


@dataclass
class ServerSentEvent:
    data: str
    event: str = 'message'
    id: Optional[str] = None


class EventParser:
    """Incremental parser for the text/event-stream line format."""

    def __init__(self):
        self.last_event_id = None
        self.retry_ms = None
        self._data = []
        self._event = ''

    def feed(self, line):
        """Consume one line (without its terminator); return a dispatched event or None."""
        if line == '':
            return self._dispatch()
        if line.startswith(':'):
            return None
        field, sep, value = line.partition(':')
        if sep and value.startswith(' '):
            value = value[1:]
        if field == 'data':
            self._data.append(value)
        elif field == 'event':
            self._event = value
        elif field == 'id':
            if '\0' not in value:
                self.last_event_id = value
        elif field == 'retry':
            if value.isdigit():
                self.retry_ms = int(value)
        return None

    def _dispatch(self):
        data, event = self._data, self._event
        self._data, self._event = [], ''
        if not data:
            return None
        return ServerSentEvent(data='\n'.join(data), event=event or 'message', id=self.last_event_id)


def iter_lines(chunks):
    """Split UTF-8 byte chunks into lines ending in CRLF, LF or CR.

    A trailing partial line is dropped at end of input, as the SSE format
    requires.
    """
    decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
    pending = ''
    for chunk in chunks:
        text = pending + decoder.decode(chunk)
        # A CR at the end may be the first half of a CRLF.
        held = text.endswith('\r')
        if held:
            text = text[:-1]
        *lines, pending = _LINE_END.split(text)
        if held:
            pending += '\r'
        yield from lines
    if pending.endswith('\r'):
        yield pending[:-1]


def read_chunks(resp, size=READ_SIZE):
    """Yield body bytes as soon as the connection delivers them."""
    raw = resp.raw
    read1 = getattr(raw, 'read1', None)
    if read1 is None:
        # urllib3 before 2.3: read from the http.client response underneath.
        read1 = raw._fp.read1
    while True:
        chunk = read1(size)
        if not chunk:
            return
        yield chunk


def _socket_of(resp):
    raw = getattr(resp, 'raw', None)
    sock = getattr(getattr(raw, '_connection', None), 'sock', None)
    if sock is None:
        fp = getattr(getattr(raw, '_fp', None), 'fp', None)
        sock = getattr(getattr(fp, 'raw', None), '_sock', None)
    return sock


def shutdown_response(resp):
    """Shut down the socket behind a streamed response without waiting on its reader."""
    sock = _socket_of(resp)
    if sock is None:
        log.debug('No socket behind %s; leaving it to the reader', getattr(resp, 'url', resp))
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        log.debug('Socket shutdown failed: %s', exc)


class EventSource:
    """One logical stream, read on a daemon thread until ``close()``."""

    def __init__(self, url, params=None, headers=None, on_message=None, on_error=None,
                 retry=DEFAULT_RETRY_SECONDS, connect_timeout=10, http=None, name='event-source'):
        self.url = url
        self.params = params or {}
        self.headers = headers or {}
        self.on_message = on_message
        self.on_error = on_error
        self.retry = retry
        self.connect_timeout = connect_timeout
        self.last_event_id = None
        self.name = name
        self._http = http or requests
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._response = None
        self._thread = None

    @property
    def closed(self):
        return self._closed.is_set()

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()

    def close(self):
        """Stop the stream. Never blocks; safe to call more than once, from any thread."""
        self._closed.set()
        with self._lock:
            resp = self._response
        if resp is not None:
            shutdown_response(resp)

    def _release(self):
        with self._lock:
            resp, self._response = self._response, None
        if resp is not None:
            try:
                resp.close()
            except Exception as exc:
                log.debug('Closing %s response failed: %s', self.url, exc)

    def _open(self):
        headers = {
            'Accept': 'text/event-stream', 'Accept-Encoding': 'identity',
            'Cache-Control': 'no-cache', **self.headers,
        }
        if self.last_event_id:
            headers['Last-Event-ID'] = self.last_event_id
        resp = self._http.get(
            self.url, params=self.params, headers=headers,
            stream=True, timeout=(self.connect_timeout, None),
        )
        if resp.status_code != 200:
            resp.close()
            raise StreamError(f'{self.url} answered HTTP {resp.status_code}')
        content_type = resp.headers.get('Content-Type', '')
        if not content_type.startswith('text/event-stream'):
            resp.close()
            raise StreamError(f'{self.url} is not an event stream ({content_type or "no content type"})')
        return resp

    def _consume(self, resp):
        parser = EventParser()
        parser.last_event_id = self.last_event_id
        for line in iter_lines(read_chunks(resp)):
            if self._closed.is_set():
                return
            event = parser.feed(line)
            if parser.retry_ms is not None:
                self.retry = parser.retry_ms / 1000
            if event is None:
                continue
            self.last_event_id = event.id
            if event.event != 'message':
                log.debug('Ignoring %r event from %s', event.event, self.url)
                continue
            if self.on_message is not None:
                self.on_message(event)

    def _notify_error(self, exc):
        if self.on_error is not None:
            self.on_error(exc)

    def _run(self):
        while not self._closed.is_set():
            try:
                resp = self._open()
                with self._lock:
                    if self._closed.is_set():
                        resp.close()
                        return
                    self._response = resp
                self._consume(resp)
                if self._closed.is_set():
                    return
                raise ConnectionError('event stream closed by server')
            except StreamError as exc:
                if self._closed.is_set():
                    return
                log.warning('Event stream failed, not retrying: %s', exc)
                self._notify_error(exc)
                return
            except Exception as exc:
                if self._closed.is_set():
                    return
                log.warning('Event stream %s error (retry in %ss): %s', self.url, self.retry, exc)
                self._notify_error(exc)
            finally:
                self._release()
            self._closed.wait(self.retry)
