"""Shared utility functions used across route modules."""
import json
import re
import secrets
from datetime import datetime, timezone

from flask import current_app, request

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]


def is_valid_url(value):
    return not value or value.startswith('https://') or value.startswith('http://')


def is_hex_color(value):
    return bool(HEX_COLOR_RE.match(value or ''))


def safe_json_loads(raw_value, fallback):
    if raw_value is None:
        return fallback
    if isinstance(raw_value, (dict, list)):
        return raw_value
    value = str(raw_value).strip()
    if not value:
        return fallback
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return fallback


def parse_int(value, default=None):
    if isinstance(value, bool):
        return default
    if isinstance(value, float) and not value.is_integer():
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def bearer_token_matches():
    expected = (current_app.config.get('CONFIG_API_TOKEN') or '').strip()
    if not expected:
        return False
    header = (request.headers.get('Authorization') or '').strip()
    scheme, _, provided = header.partition(' ')
    if scheme.lower() != 'bearer' or not provided.strip():
        return False
    return secrets.compare_digest(expected, provided.strip())
