import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-in-production')
    SESSION_COOKIE_HTTPONLY = True
    PERMANENT_SESSION_LIFETIME = 3600

    LOG_API_URL      = os.environ.get('LOG_API_URL', 'http://127.0.0.1:8080')
    LOG_API_TOKEN    = os.environ.get('LOG_API_TOKEN', '')
    DIRECTORY_SOURCE = os.environ.get('DIRECTORY_SOURCE', 'http')
    DIRECTORY_PATH   = os.environ.get('DIRECTORY_PATH', '/api/applications')
    STREAM_PATH      = os.environ.get('STREAM_PATH', '/api/logs/stream')
    STREAM_QUERY_PARAM = os.environ.get('STREAM_QUERY_PARAM', 'application')
    DOCKER_APP_LABEL = os.environ.get('DOCKER_APP_LABEL', 'com.docker.compose.project')

    REQUEST_TIMEOUT        = float(os.environ.get('REQUEST_TIMEOUT', '5'))
    STREAM_CONNECT_TIMEOUT = float(os.environ.get('STREAM_CONNECT_TIMEOUT', '10'))
    STREAM_RETRY_SECONDS   = float(os.environ.get('STREAM_RETRY_SECONDS', '3'))

    AUTO_SCROLL_THRESHOLD = int(os.environ.get('AUTO_SCROLL_THRESHOLD', '10'))
    MAX_BUFFER_LINES      = int(os.environ.get('MAX_BUFFER_LINES', '0'))  # 0 = unbounded
    VIEW_IDLE_TIMEOUT     = int(os.environ.get('VIEW_IDLE_TIMEOUT', '300'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @property
    def DIRECTORY_URL(self):
        return self.LOG_API_URL.rstrip('/') + self.DIRECTORY_PATH

    @property
    def STREAM_URL(self):
        return self.LOG_API_URL.rstrip('/') + self.STREAM_PATH

    @property
    def UPSTREAM_HEADERS(self):
        if not self.LOG_API_TOKEN:
            return {}
        return {'Authorization': f'Bearer {self.LOG_API_TOKEN}'}
