from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class LineKind(Enum):
    DATA = 'data'
    SYSTEM = 'system'


def utc_timestamp(now=None):
    """UTC, second precision, no zone suffix: 2024-01-15T10:30:00"""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S')


@dataclass(frozen=True)
class Line:
    content: str
    timestamp: str
    kind: LineKind = LineKind.DATA

    @classmethod
    def system(cls, message, timestamp=None):
        return cls(content=message, timestamp=timestamp or utc_timestamp(), kind=LineKind.SYSTEM)

    @property
    def key(self):
        return (self.timestamp, self.content)

    def to_dict(self):
        return {'content': self.content, 'timestamp': self.timestamp, 'kind': self.kind.value}


class LineBuffer:
    """Ordered sequence of displayed lines.

    Unbounded unless ``max_lines`` is set, in which case the oldest lines are
    evicted first (deque(maxlen=...) gives O(1) append + eviction).

    Every mutation bumps ``revision`` and stamps it on the line it wrote.
    Since only the last line can ever be rewritten, stamps are non-decreasing
    from front to back, so "everything written after revision R" is always a
    suffix of the buffer. ``epoch`` changes whenever the whole content is
    replaced (reset/clear), telling pollers to drop their copy.

    ``first_index`` is the absolute index of the oldest retained line; it only
    grows when bounded mode evicts.
    """

    def __init__(self, max_lines=None):
        self._entries = deque(maxlen=max_lines or None)
        self.epoch = 0
        self.revision = 0
        self.first_index = 0

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return (line for _, line in self._entries)

    @property
    def lines(self):
        return [line for _, line in self._entries]

    @property
    def last(self):
        return self._entries[-1][1] if self._entries else None

    def _bump(self):
        self.revision += 1
        return self.revision

    def reset(self, seed):
        self._entries.clear()
        self.epoch += 1
        self.first_index = 0
        self._entries.append((self._bump(), seed))

    def append(self, line):
        if self._entries.maxlen is not None and len(self._entries) == self._entries.maxlen:
            self.first_index += 1
        self._entries.append((self._bump(), line))

    def replace_last(self, line):
        if not self._entries:
            self.append(line)
            return
        self._entries[-1] = (self._bump(), line)

    def clear(self):
        self._entries.clear()
        self.epoch += 1
        self.first_index = 0
        self._bump()

    def changes_since(self, epoch, revision):
        """Return what a poller holding (epoch, revision) is missing.

        A poller on another epoch gets a full snapshot (``reset`` true);
        otherwise ``lines`` replace the poller's copy from absolute index
        ``offset`` onwards, and lines before ``first`` were evicted.
        """
        if epoch != self.epoch:
            return {
                'epoch': self.epoch,
                'revision': self.revision,
                'reset': True,
                'first': self.first_index,
                'offset': self.first_index,
                'lines': [line.to_dict() for line in self],
            }
        changed = []
        for rev, line in reversed(self._entries):
            if rev <= revision:
                break
            changed.append(line)
        changed.reverse()
        return {
            'epoch': self.epoch,
            'revision': self.revision,
            'reset': False,
            'first': self.first_index,
            'offset': self.first_index + len(self._entries) - len(changed),
            'lines': [line.to_dict() for line in changed],
        }
