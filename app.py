#!/usr/bin/env python3
"""
podtail - live log-tail viewer.

Pick a running application or pod and watch its output stream in a
terminal-style pane. Configuration comes from the environment / .env
(see podtail/config.py).
"""

import logging
import os

from podtail import create_app
from podtail.config import Config

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = create_app()


if __name__ == '__main__':
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '5000'))
    cfg = app.podtail_config
    print("=" * 50)
    print("podtail live log viewer")
    print("=" * 50)
    print(f"Log service:      {cfg.LOG_API_URL}")
    print(f"Directory source: {cfg.DIRECTORY_SOURCE}")
    print(f"Access:           http://{host}:{port}")
    print("=" * 50)

    app.run(host=host, port=port, debug=False, threaded=True)
