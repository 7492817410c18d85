import re
import uuid

from flask import Blueprint, current_app, jsonify, render_template, request, session

from ..services import identity as ident
from ..services.directory import DirectoryError, list_applications

bp = Blueprint('viewer', __name__)

_VIEW_ID = re.compile(r'^[A-Za-z0-9-]{1,64}$')


def _view_id():
    """Per-page view id sent by the terminal, else one per browser session."""
    # sendBeacon (used on page unload) cannot set headers, hence ?view=
    view_id = request.headers.get('X-View-Id') or request.args.get('view', '')
    if _VIEW_ID.match(view_id):
        return view_id
    if 'view_id' not in session:
        session['view_id'] = uuid.uuid4().hex
    return session['view_id']


def _context():
    return current_app.viewers.get(_view_id())


def _bad_request(message):
    return jsonify({'ok': False, 'error': message}), 400


@bp.route('/')
def terminal():
    return render_template('terminal.html', view_id=uuid.uuid4().hex)


@bp.route('/api/applications')
def api_applications():
    cfg = current_app.podtail_config
    try:
        apps = list_applications(cfg)
    except DirectoryError as e:
        _context().notify(f'Failed to load applications: {e}')
        return jsonify({'ok': False, 'error': str(e)}), 502
    return jsonify([
        {'key': ident.key(a), 'label': ident.label(a), **ident.to_dict(a)}
        for a in apps
    ])


@bp.route('/api/viewer/select', methods=['POST'])
def api_select():
    data = request.get_json(silent=True) or {}
    raw = data.get('key')
    if not isinstance(raw, str) or not raw:
        return _bad_request('Missing application key')
    try:
        target = ident.parse_key(raw)
    except ValueError as e:
        return _bad_request(str(e))
    _context().select(target)
    return jsonify({'ok': True, 'key': ident.key(target), 'label': ident.label(target)})


@bp.route('/api/viewer/lines')
def api_lines():
    epoch = request.args.get('epoch', type=int)
    revision = request.args.get('revision', 0, type=int)
    return jsonify(_context().snapshot(epoch, revision))


@bp.route('/api/viewer/scroll', methods=['POST'])
def api_scroll():
    data = request.get_json(silent=True) or {}
    try:
        geometry = [float(data[k]) for k in ('scrollHeight', 'clientHeight', 'scrollTop')]
    except (KeyError, TypeError, ValueError):
        return _bad_request('scrollHeight, clientHeight and scrollTop are required numbers')
    return jsonify({'ok': True, 'autoScroll': _context().on_scroll(*geometry)})


@bp.route('/api/viewer/autoscroll', methods=['POST'])
def api_autoscroll():
    data = request.get_json(silent=True) or {}
    enabled = data.get('enabled')
    if not isinstance(enabled, bool):
        return _bad_request("'enabled' must be a boolean")
    return jsonify({'ok': True, 'autoScroll': _context().set_auto_scroll(enabled)})


@bp.route('/api/viewer/clear', methods=['POST'])
def api_clear():
    _context().clear()
    return jsonify({'ok': True})


@bp.route('/api/viewer/close', methods=['POST'])
def api_close():
    closed = current_app.viewers.discard(_view_id())
    return jsonify({'ok': True, 'closed': closed})
