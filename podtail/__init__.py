import atexit
import os

from flask import Flask, jsonify, render_template, request

from .config import Config
from .services.stream import EventSource
from .services.viewer import ViewerRegistry


def create_app(config_class=Config, source_factory=None):
    app = Flask(__name__)
    cfg = config_class()
    app.secret_key = cfg.SECRET_KEY
    app.config['SESSION_COOKIE_HTTPONLY'] = cfg.SESSION_COOKIE_HTTPONLY
    app.config['SESSION_COOKIE_SAMESITE'] = getattr(cfg, 'SESSION_COOKIE_SAMESITE', 'Lax')
    app.config['PERMANENT_SESSION_LIFETIME'] = cfg.PERMANENT_SESSION_LIFETIME

    # Store config object on app for services that need it in threads
    app.podtail_config = cfg
    app.viewers = ViewerRegistry(cfg, source_factory=source_factory or EventSource)
    # Release upstream streams when the process exits
    atexit.register(app.viewers.close_all)

    from .blueprints.viewer import bp as viewer_bp

    app.register_blueprint(viewer_bp)

    # Security headers on every response
    @app.after_request
    def _security_headers(response):
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'same-origin')
        if request.path.startswith('/api/'):
            response.headers.setdefault('Cache-Control', 'no-store')
        return response

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Not found', 'status': 404}), 404
        return render_template('error.html', code=404, message='Page not found'), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Method not allowed', 'status': 405}), 405
        return render_template('error.html', code=405, message='Method not allowed'), 405

    @app.errorhandler(500)
    def server_error(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Internal server error', 'status': 500}), 500
        return render_template('error.html', code=500, message='Internal server error'), 500

    # Start background daemons only once.
    # Skip in TESTING mode (CI/pytest) to avoid thread leaks.
    # Guard against werkzeug reloader double-start in dev.
    if not os.environ.get('TESTING') and (
        not app.debug or os.environ.get('WERKZEUG_RUN_MAIN') == 'true'
    ):
        from .services.schedulers import start_all
        start_all(app)

    return app
