"""Configuration store backends.

``LocalConfigStore`` keeps the configuration in this application's database.
``RemoteConfigStore`` talks to another instance's JSON API over HTTP and
funnels contact settings writes through one ``WriteQueue`` per record.
Both expose ``read``, ``persist``, ``list_configs`` and ``put_config``.
"""
import atexit
import json
import logging
import threading
import urllib.error
import urllib.request
from concurrent.futures import Future

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from .models import db, ContactSettings, SiteConfig, DEFAULT_CONTACT_SETTINGS_ID
from .sections import (
    SITE_CONFIG_KEYS,
    SectionValidationError,
    default_contact_settings,
    normalize_contact_settings,
    normalize_section,
)
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)


class ConfigStoreError(Exception):
    """The configuration store could not complete a request."""


class StaleVersionError(ConfigStoreError):
    def __init__(self, record_id, expected_version, current_version=None):
        super().__init__(
            f'Contact settings {record_id} changed since version {expected_version}'
            + (f' (now {current_version}).' if current_version is not None else '.')
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.current_version = current_version


def format_etag(version):
    return f'"{int(version or 0)}"'


def parse_etag(value):
    raw = (value or '').strip()
    if not raw or raw == '*':
        return None
    if raw.startswith('W/'):
        raw = raw[2:]
    try:
        return int(raw.strip('"'))
    except ValueError:
        return None


def _completed_future(result=None, error=None):
    future = Future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
    return future


def _run_callbacks(future, on_success, on_error):
    error = future.exception()
    callback = on_error if error is not None else on_success
    if callback is None:
        return
    try:
        callback(error if error is not None else future.result())
    except Exception:
        logger.exception('Persistence callback raised.')


class LocalConfigStore:
    """Database-backed store. Must be used inside an application context."""

    def read(self, record_id=DEFAULT_CONTACT_SETTINGS_ID):
        record = db.session.get(ContactSettings, record_id)
        if record is None:
            return default_contact_settings(record_id)
        return record.to_dict()

    def replace(self, record_id, payload, expected_version=None):
        changes = normalize_contact_settings(payload)
        record = db.session.get(ContactSettings, record_id)
        if record is None:
            if expected_version not in (None, 0):
                raise StaleVersionError(record_id, expected_version, 0)
            defaults = default_contact_settings(record_id)
            record = ContactSettings(id=record_id)
            for name in ('contact_items', 'schedule_info', 'location_info'):
                record.set_section(name, defaults[name])
            db.session.add(record)
        elif expected_version is not None and record.version != expected_version:
            raise StaleVersionError(record_id, expected_version, record.version)

        for name, value in changes.items():
            record.set_section(name, value)
        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise StaleVersionError(record_id, expected_version) from exc
        return record.to_dict()

    def persist(self, record_id, payload, expected_version=None, on_success=None, on_error=None):
        try:
            future = _completed_future(result=self.replace(record_id, payload, expected_version))
        except (ConfigStoreError, SectionValidationError) as exc:
            future = _completed_future(error=exc)
        _run_callbacks(future, on_success, on_error)
        return future

    def list_configs(self):
        return [row.to_dict() for row in SiteConfig.query.order_by(SiteConfig.key).all()]

    def get_config(self, key):
        row = SiteConfig.query.filter_by(key=key).first()
        return row.data if row else {}

    def put_config(self, key, value):
        if key not in SITE_CONFIG_KEYS:
            raise SectionValidationError({key: 'Unknown configuration section.'})
        normalized = normalize_section(key, value)
        row = SiteConfig.query.filter_by(key=key).first()
        if row is None:
            row = SiteConfig(key=key)
            db.session.add(row)
        row.set_data(normalized)
        db.session.commit()
        return row.to_dict()


class RemoteConfigStore:
    """HTTP client for another instance's ``/api/admin`` endpoints."""

    def __init__(self, base_url, token='', timeout=10.0, opener=None, executor=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._opener = opener or urllib.request.urlopen
        self._executor = executor
        self._queues = {}
        self._latest_versions = {}
        self._replaced_versions = {}
        self._lock = threading.Lock()

    def _request(self, method, path, body=None, headers=None):
        data = None
        request_headers = {'Accept': 'application/json'}
        if self.token:
            request_headers['Authorization'] = f'Bearer {self.token}'
        if body is not None:
            data = json.dumps(body, ensure_ascii=False).encode('utf-8')
            request_headers['Content-Type'] = 'application/json'
        request_headers.update(headers or {})
        req = urllib.request.Request(f'{self.base_url}{path}', data=data, headers=request_headers, method=method)
        try:
            with self._opener(req, timeout=self.timeout) as response:  # nosec B310
                return json.loads(response.read().decode('utf-8') or 'null')
        except urllib.error.HTTPError as exc:
            detail = {}
            try:
                detail = json.loads(exc.read().decode('utf-8') or '{}')
            except (ValueError, OSError):
                detail = {}
            if exc.code == 409:
                raise StaleVersionError(
                    detail.get('record_id'), detail.get('expected_version'), detail.get('current_version'),
                ) from exc
            if exc.code == 422:
                raise SectionValidationError(detail.get('errors') or {'payload': 'Rejected by store.'}) from exc
            raise ConfigStoreError(f'{method} {path} failed with HTTP {exc.code}.') from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise ConfigStoreError(f'{method} {path} failed: {exc}') from exc

    def read(self, record_id=DEFAULT_CONTACT_SETTINGS_ID):
        record = self._request('GET', f'/api/admin/contact-settings?id={int(record_id)}')
        self._remember_version(record_id, record.get('version'))
        return record

    def _remember_version(self, record_id, version, replaced=None):
        with self._lock:
            if version is not None:
                self._latest_versions[record_id] = version
            if replaced is not None:
                self._replaced_versions.setdefault(record_id, set()).add(replaced)

    def _rebase_version(self, record_id, expected_version):
        # A version that one of our own earlier writes replaced is not stale for
        # writes queued behind it.
        with self._lock:
            if expected_version in self._replaced_versions.get(record_id, ()):
                return self._latest_versions.get(record_id, expected_version)
            return expected_version

    def _queue_for(self, record_id):
        with self._lock:
            queue = self._queues.get(record_id)
            if queue is None:
                queue = WriteQueue(
                    lambda job: self._send_write(record_id, job),
                    executor=self._executor,
                    name=f'contact-settings-{record_id}',
                )
                self._queues[record_id] = queue
            return queue

    def _send_write(self, record_id, job):
        payload, expected_version = job
        expected_version = self._rebase_version(record_id, expected_version)
        headers = {}
        if expected_version is not None:
            headers['If-Match'] = format_etag(expected_version)
        record = self._request('PUT', f'/api/admin/contact-settings/{int(record_id)}', body=payload, headers=headers)
        self._remember_version(record_id, record.get('version'), replaced=expected_version)
        return record

    def persist(self, record_id, payload, expected_version=None, on_success=None, on_error=None):
        queue = self._queue_for(record_id)
        return queue.submit((payload, expected_version), on_success=on_success, on_error=on_error)

    def list_configs(self):
        return self._request('GET', '/api/admin/config') or []

    def get_config(self, key):
        for entry in self.list_configs():
            if entry.get('key') == key:
                return entry.get('value') or {}
        return {}

    def put_config(self, key, value):
        return self._request('PUT', f'/api/admin/config/{key}', body={'value': value})

    def close(self):
        for queue in list(self._queues.values()):
            queue.close()


def build_config_store(app):
    base_url = app.config.get('CONFIG_STORE_URL') or ''
    if base_url:
        app.logger.info('Using remote configuration store at %s.', base_url)
        store = RemoteConfigStore(
            base_url,
            token=app.config.get('CONFIG_STORE_TOKEN') or '',
            timeout=float(app.config.get('CONFIG_STORE_TIMEOUT_SECONDS') or 10.0),
        )
        atexit.register(store.close)
        return store
    return LocalConfigStore()


def get_config_store():
    return current_app.extensions['config_store']
