import logging
import threading
import time

from . import identity as ident
from .buffer import Line, LineBuffer
from .scroll import ScrollPolicy
from .session import StreamSession
from .stream import EventSource

log = logging.getLogger(__name__)


class ViewerContext:
    """Everything one terminal view owns: the buffer, the auto-scroll flag and
    at most one live stream session.

    All state changes happen under ``lock``; the stream reader threads take
    the same lock before touching the buffer.
    """

    def __init__(self, cfg, source_factory=EventSource):
        self.cfg = cfg
        self.lock = threading.Lock()
        self.buffer = LineBuffer(max_lines=cfg.MAX_BUFFER_LINES or None)
        self.scroll = ScrollPolicy(threshold=cfg.AUTO_SCROLL_THRESHOLD)
        self.session = None
        self.last_seen = time.monotonic()
        self._source_factory = source_factory

    def touch(self):
        self.last_seen = time.monotonic()

    def select(self, target):
        """Supersede the current session (if any) with one streaming ``target``."""
        with self.lock:
            if self.session is not None:
                self.session.close()
            self.buffer.reset(Line.system(f'Connected to application: {ident.label(target)}'))
            self.scroll.after_mutation(self.buffer.revision)
            self.session = StreamSession(
                target, self.buffer, self.scroll, self.lock,
                url=self.cfg.STREAM_URL,
                params_key=self.cfg.STREAM_QUERY_PARAM,
                headers=self.cfg.UPSTREAM_HEADERS,
                retry=self.cfg.STREAM_RETRY_SECONDS,
                connect_timeout=self.cfg.STREAM_CONNECT_TIMEOUT,
                source_factory=self._source_factory,
            )
            self.session.start()
            return self.session

    def teardown(self):
        with self.lock:
            if self.session is not None:
                self.session.close()
                self.session = None

    def clear(self):
        """Empty the terminal; the live connection is left alone."""
        with self.lock:
            self.buffer.clear()

    def notify(self, message):
        """Append a system notice, e.g. a failed directory fetch."""
        with self.lock:
            self.buffer.append(Line.system(message))
            self.scroll.after_mutation(self.buffer.revision)

    def on_scroll(self, scroll_height, client_height, scroll_top):
        with self.lock:
            return self.scroll.on_scroll(scroll_height, client_height, scroll_top)

    def set_auto_scroll(self, enabled):
        with self.lock:
            self.scroll.set_auto_scroll(enabled)
            return self.scroll.auto_scroll

    def snapshot(self, epoch=None, revision=0):
        """Buffer changes for a poller plus the view state it renders."""
        with self.lock:
            data = self.buffer.changes_since(epoch, revision)
            session = self.session
            data.update({
                'target': ident.to_dict(session.target) if session else None,
                'label': ident.label(session.target) if session else None,
                'state': session.state.value if session else 'idle',
                'autoScroll': self.scroll.auto_scroll,
                'scrollTo': self.scroll.take_scroll_request(),
            })
            return data


class ViewerRegistry:
    """Viewer contexts keyed by browser view id."""

    def __init__(self, cfg, source_factory=EventSource):
        self.cfg = cfg
        self._source_factory = source_factory
        self._views = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._views)

    def __contains__(self, view_id):
        with self._lock:
            return view_id in self._views

    def get(self, view_id):
        with self._lock:
            ctx = self._views.get(view_id)
            if ctx is None:
                ctx = ViewerContext(self.cfg, source_factory=self._source_factory)
                self._views[view_id] = ctx
        ctx.touch()
        return ctx

    def discard(self, view_id):
        with self._lock:
            ctx = self._views.pop(view_id, None)
        if ctx is not None:
            ctx.teardown()
        return ctx is not None

    def reap_idle(self, max_idle, now=None):
        """Tear down views nobody has polled for ``max_idle`` seconds."""
        now = time.monotonic() if now is None else now
        with self._lock:
            stale = [vid for vid, ctx in self._views.items() if now - ctx.last_seen > max_idle]
            contexts = [self._views.pop(vid) for vid in stale]
        for ctx in contexts:
            ctx.teardown()
        if stale:
            log.info('Reaped %d idle view(s)', len(stale))
        return len(stale)

    def close_all(self):
        with self._lock:
            contexts = list(self._views.values())
            self._views.clear()
        for ctx in contexts:
            ctx.teardown()
