import json

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .utils import safe_json_loads, utc_now_naive

db = SQLAlchemy()

DEFAULT_CONTACT_SETTINGS_ID = 1


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class SiteConfig(db.Model):
    """One named configuration section (hero_section, general_info, ...)."""

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False, default='{}')
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def data(self):
        return safe_json_loads(self.value, {})

    def set_data(self, data):
        self.value = json.dumps(data, ensure_ascii=False)

    def to_dict(self):
        return {'key': self.key, 'value': self.data}


class ContactSettings(db.Model):
    """Contact buttons, business hours and location for the public site.

    The three sub-objects are always written together. ``version`` is bumped by
    SQLAlchemy on every UPDATE and a write against an outdated row raises
    ``StaleDataError``.
    """

    id = db.Column(db.Integer, primary_key=True)
    contact_items = db.Column(db.Text, nullable=False, default='[]')
    schedule_info = db.Column(db.Text, nullable=False, default='{}')
    location_info = db.Column(db.Text, nullable=False, default='{}')
    version = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __mapper_args__ = {'version_id_col': version}

    def set_section(self, name, value):
        setattr(self, name, json.dumps(value, ensure_ascii=False))

    def to_dict(self):
        return {
            'id': self.id,
            'version': self.version,
            'contact_items': safe_json_loads(self.contact_items, []),
            'schedule_info': safe_json_loads(self.schedule_info, {}),
            'location_info': safe_json_loads(self.location_info, {}),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
