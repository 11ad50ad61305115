"""JSON configuration store API.

Every handler here works on this instance's database, even when the admin
panel itself is pointed at a remote store.
"""
from functools import wraps

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user

from ..models import DEFAULT_CONTACT_SETTINGS_ID
from ..sections import SectionValidationError
from ..store import LocalConfigStore, StaleVersionError, format_etag, parse_etag
from ..utils import bearer_token_matches, parse_int

api_bp = Blueprint('api', __name__)
local_store = LocalConfigStore()


def api_auth_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user.is_authenticated or bearer_token_matches():
            return view(*args, **kwargs)
        return jsonify({'error': 'unauthorized'}), 401
    return wrapped


def _record_response(record, status=200):
    response = jsonify(record)
    response.status_code = status
    response.headers['ETag'] = format_etag(record.get('version'))
    response.headers['Cache-Control'] = 'no-store'
    return response


@api_bp.route('/config')
@api_auth_required
def config_list():
    return jsonify(local_store.list_configs())


@api_bp.route('/config/<key>', methods=['PUT'])
@api_auth_required
def config_update(key):
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or 'value' not in body:
        return jsonify({'error': 'invalid', 'errors': {'value': 'This field is required.'}}), 422
    try:
        entry = local_store.put_config(key, body['value'])
    except SectionValidationError as exc:
        return jsonify({'error': 'invalid', 'errors': exc.errors}), 422
    current_app.logger.info('Configuration section %s replaced.', key)
    return jsonify(entry)


@api_bp.route('/contact-settings')
@api_auth_required
def contact_settings_read():
    record_id = parse_int(request.args.get('id'), DEFAULT_CONTACT_SETTINGS_ID)
    if record_id is None or record_id < 1:
        abort(404)
    return _record_response(local_store.read(record_id))


@api_bp.route('/contact-settings/<int:record_id>', methods=['PUT'])
@api_auth_required
def contact_settings_write(record_id):
    if record_id < 1:
        abort(404)
    payload = request.get_json(silent=True)
    expected_version = parse_etag(request.headers.get('If-Match'))
    try:
        record = local_store.replace(record_id, payload, expected_version=expected_version)
    except SectionValidationError as exc:
        return jsonify({'error': 'invalid', 'errors': exc.errors}), 422
    except StaleVersionError as exc:
        current_app.logger.warning('Rejected stale write on contact settings %s.', record_id)
        return jsonify({
            'error': 'stale_version',
            'record_id': record_id,
            'expected_version': exc.expected_version,
            'current_version': exc.current_version,
        }), 409
    current_app.logger.info('Contact settings %s replaced (version=%s).', record_id, record.get('version'))
    return _record_response(record)
