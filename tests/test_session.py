"""Tests for message decoding and the stream session state machine."""
import json

import pytest

from podtail.services.buffer import Line, LineBuffer, LineKind
from podtail.services.identity import MultiPod, SinglePod, key
from podtail.services.scroll import ScrollPolicy
from podtail.services.session import (
    CONNECTION_ERROR_MESSAGE, MessageDecodeError, SessionState, StreamSession, decode_message,
)


def msg(**fields):
    return json.dumps(fields)


class TestDecodeMessage:
    def test_data_message(self):
        line, replace = decode_message(msg(row='hello', timestamp='t1', replaceLastRow=False))
        assert line == Line('hello', 't1', LineKind.DATA)
        assert replace is False

    def test_data_replace(self):
        _, replace = decode_message(msg(row='hello', timestamp='t1', replaceLastRow=True))
        assert replace is True

    def test_missing_replace_flag_means_append(self):
        _, replace = decode_message(msg(row='hello', timestamp='t1'))
        assert replace is False

    def test_system_message_never_replaces(self):
        line, replace = decode_message(msg(message='done', timestamp='t2', replaceLastRow=True))
        assert line == Line('done', 't2', LineKind.SYSTEM)
        assert replace is False

    def test_explicit_type_wins(self):
        line, _ = decode_message(msg(type='SYSTEM', message='m', row='r', timestamp='t'))
        assert line.kind is LineKind.SYSTEM

    @pytest.mark.parametrize('payload', [
        'not json',
        '[1, 2]',
        '"text"',
        msg(timestamp='t'),
        msg(type='progress', row='r', timestamp='t'),
        msg(row=5, timestamp='t'),
        msg(row='r'),
        msg(row='r', timestamp='t', replaceLastRow='yes'),
        msg(message=None, timestamp='t'),
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(MessageDecodeError):
            decode_message(payload)


@pytest.fixture()
def parts(lock):
    buf = LineBuffer()
    buf.reset(Line.system('Connected to application: api', 't0'))
    return buf, ScrollPolicy(), lock


def make_session(parts, factory, target=SinglePod('api')):
    buf, scroll, lock = parts
    session = StreamSession(
        target, buf, scroll, lock, url='http://logs.test/stream', source_factory=factory,
    )
    return session, factory.instances[-1]


class TestStreamSession:
    def test_source_is_scoped_to_the_target_key(self, parts, source_factory):
        target = MultiPod('shop', 'shop-1')
        _, source = make_session(parts, source_factory, target)
        assert source.params == {'application': key(target)}
        assert source.url == 'http://logs.test/stream'

    def test_lifecycle(self, parts, source_factory):
        session, source = make_session(parts, source_factory)
        assert session.state is SessionState.IDLE
        session.start()
        assert source.started
        assert session.state is SessionState.CONNECTING
        source.emit(msg(row='a', timestamp='t1'))
        assert session.state is SessionState.STREAMING
        source.fail()
        assert session.state is SessionState.ERROR
        source.emit(msg(row='b', timestamp='t2'))
        assert session.state is SessionState.STREAMING
        session.close()
        assert session.state is SessionState.CLOSED
        assert source.close_calls == 1

    def test_close_is_idempotent(self, parts, source_factory):
        session, source = make_session(parts, source_factory)
        session.start()
        session.close()
        session.close()
        assert source.close_calls == 1

    def test_error_from_connecting_state(self, parts, source_factory):
        buf = parts[0]
        session, source = make_session(parts, source_factory)
        session.start()
        source.fail()
        assert session.state is SessionState.ERROR
        assert buf.last.content == CONNECTION_ERROR_MESSAGE
        assert buf.last.kind is LineKind.SYSTEM

    def test_end_to_end_sequence(self, parts, source_factory):
        buf = parts[0]
        session, source = make_session(parts, source_factory)
        session.start()
        source.emit(msg(row='line1', timestamp='t1', replaceLastRow=False))
        assert [l.content for l in buf] == ['Connected to application: api', 'line1']
        source.emit(msg(row='line1-updated', timestamp='t2', replaceLastRow=True))
        assert buf.lines == [Line('Connected to application: api', 't0', LineKind.SYSTEM),
                             Line('line1-updated', 't2', LineKind.DATA)]
        source.emit(msg(message='done', timestamp='t3'))
        assert [(l.content, l.kind) for l in buf] == [
            ('Connected to application: api', LineKind.SYSTEM),
            ('line1-updated', LineKind.DATA),
            ('done', LineKind.SYSTEM),
        ]

    def test_malformed_message_dropped_silently(self, parts, source_factory):
        buf, scroll, _ = parts
        session, source = make_session(parts, source_factory)
        session.start()
        before = buf.lines
        scroll.take_scroll_request()
        source.emit('{"garbage": true}')
        source.emit('{{{')
        assert buf.lines == before
        assert scroll.take_scroll_request() is None
        source.emit(msg(row='still alive', timestamp='t'))
        assert buf.last.content == 'still alive'

    def test_each_mutation_requests_scroll(self, parts, source_factory):
        buf, scroll, _ = parts
        session, source = make_session(parts, source_factory)
        session.start()
        source.emit(msg(row='a', timestamp='t'))
        assert scroll.take_scroll_request() == buf.revision
        source.fail()
        assert scroll.take_scroll_request() == buf.revision

    def test_closed_session_cannot_mutate(self, parts, source_factory):
        buf = parts[0]
        session, source = make_session(parts, source_factory)
        session.start()
        session.close()
        before = buf.lines
        source.emit(msg(row='late', timestamp='t'))
        source.fail()
        assert buf.lines == before
        assert session.state is SessionState.CLOSED
