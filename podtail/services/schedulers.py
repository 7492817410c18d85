import logging
import threading
import time

log = logging.getLogger(__name__)

REAPER_INTERVAL_SECONDS = 30


def start_all(app):
    """Start all daemon background threads."""
    cfg = app.podtail_config

    if cfg.VIEW_IDLE_TIMEOUT > 0:
        def _reaper_loop():
            while True:
                time.sleep(min(REAPER_INTERVAL_SECONDS, cfg.VIEW_IDLE_TIMEOUT))
                try:
                    app.viewers.reap_idle(cfg.VIEW_IDLE_TIMEOUT)
                except Exception as exc:
                    log.warning('Idle view reaper error: %s', exc)

        threading.Thread(target=_reaper_loop, daemon=True, name='view-reaper').start()
