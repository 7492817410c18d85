AUTO_SCROLL_THRESHOLD = 10  # px from the bottom that still counts as "at the bottom"


class ScrollPolicy:
    """Keeps the terminal pinned to the newest line until the user scrolls away.

    The flag is only ever changed by viewport geometry (``on_scroll``) or the
    manual toggle, never by a buffer mutation. After a mutation the policy
    records a scroll request tagged with the buffer revision that caused it;
    the view scrolls only once it has rendered that revision.
    """

    def __init__(self, threshold=AUTO_SCROLL_THRESHOLD, auto_scroll=True):
        self.threshold = threshold
        self.auto_scroll = auto_scroll
        self._pending = None

    def on_scroll(self, scroll_height, client_height, scroll_top):
        distance = scroll_height - client_height - scroll_top
        self.auto_scroll = abs(distance) < self.threshold
        if not self.auto_scroll:
            self._pending = None
        return self.auto_scroll

    def set_auto_scroll(self, enabled):
        self.auto_scroll = bool(enabled)
        if not self.auto_scroll:
            self._pending = None

    def after_mutation(self, revision):
        if not self.auto_scroll:
            return
        self._pending = revision

    def take_scroll_request(self):
        """Return the pending scroll revision (or None) and forget it."""
        pending, self._pending = self._pending, None
        return pending
