"""
Shared pytest fixtures.

Key design decisions:
- TestConfig class with every upstream setting pinned (avoids class-level os.environ.get timing issues).
- TESTING env var prevents background schedulers from starting.
- Sessions are built with FakeEventSource; only test_stream_socket.py opens real sockets,
  against a server on 127.0.0.1.
"""
import os
import threading

import pytest


class TestConfig:
    SECRET_KEY = 'pytest-secret'
    SESSION_COOKIE_HTTPONLY = True
    PERMANENT_SESSION_LIFETIME = 3600

    LOG_API_URL = 'http://logs.test'
    LOG_API_TOKEN = ''
    DIRECTORY_SOURCE = 'http'
    DIRECTORY_PATH = '/api/applications'
    STREAM_PATH = '/api/logs/stream'
    STREAM_QUERY_PARAM = 'application'
    DOCKER_APP_LABEL = 'com.docker.compose.project'
    REQUEST_TIMEOUT = 5
    STREAM_CONNECT_TIMEOUT = 10
    STREAM_RETRY_SECONDS = 0
    AUTO_SCROLL_THRESHOLD = 10
    MAX_BUFFER_LINES = 0
    VIEW_IDLE_TIMEOUT = 0
    LOG_LEVEL = 'DEBUG'

    @property
    def DIRECTORY_URL(self):
        return self.LOG_API_URL + self.DIRECTORY_PATH

    @property
    def STREAM_URL(self):
        return self.LOG_API_URL + self.STREAM_PATH

    @property
    def UPSTREAM_HEADERS(self):
        return {'Authorization': f'Bearer {self.LOG_API_TOKEN}'} if self.LOG_API_TOKEN else {}


class FakeEventSource:
    """Stands in for EventSource: records its arguments, never connects.

    Tests push events with ``emit`` / ``fail`` exactly like the reader thread would.
    """

    instances = []

    def __init__(self, url, params=None, headers=None, on_message=None, on_error=None,
                 retry=None, connect_timeout=None, name=None):
        self.url = url
        self.params = params
        self.headers = headers
        self.on_message = on_message
        self.on_error = on_error
        self.started = False
        self.close_calls = 0
        FakeEventSource.instances.append(self)

    @property
    def closed(self):
        return self.close_calls > 0

    def start(self):
        self.started = True

    def close(self):
        self.close_calls += 1

    def emit(self, data):
        from podtail.services.stream import ServerSentEvent
        self.on_message(ServerSentEvent(data=data))

    def fail(self, exc=None):
        self.on_error(exc or ConnectionError('boom'))


@pytest.fixture()
def cfg():
    return TestConfig()


@pytest.fixture()
def fake_sources():
    FakeEventSource.instances = []
    yield FakeEventSource.instances
    FakeEventSource.instances = []


@pytest.fixture()
def lock():
    return threading.Lock()


@pytest.fixture(scope='session')
def app():
    """
    Session-scoped Flask test application.

    Background schedulers are suppressed via TESTING env var.
    """
    os.environ['TESTING'] = '1'

    from podtail import create_app
    flask_app = create_app(config_class=TestConfig, source_factory=FakeEventSource)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture()
def client(app):
    """Flask test client bound to one terminal view."""
    c = app.test_client()
    c.environ_base['HTTP_X_VIEW_ID'] = os.urandom(8).hex()
    yield c
    app.viewers.discard(c.environ_base['HTTP_X_VIEW_ID'])


@pytest.fixture()
def source_factory(fake_sources):
    """The FakeEventSource class, with a fresh ``instances`` list."""
    return FakeEventSource
