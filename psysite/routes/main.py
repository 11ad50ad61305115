from flask import Blueprint, current_app, render_template

from .. import get_site_config, resolve_hero
from ..contact_items import ICON_CSS_CLASSES, active_items
from ..sections import section_defaults
from ..store import ConfigStoreError, get_config_store

main_bp = Blueprint('main', __name__)


def _public_contact_settings():
    record_id = current_app.config.get('CONTACT_SETTINGS_ID', 1)
    try:
        record = get_config_store().read(record_id)
    except ConfigStoreError:
        current_app.logger.exception('Failed to load contact settings for the public page.')
        record = {}
    schedule = dict(section_defaults('schedule_info'), **(record.get('schedule_info') or {}))
    location = dict(section_defaults('location_info'), **(record.get('location_info') or {}))
    return {
        'items': active_items(record.get('contact_items') or []),
        'schedule': schedule if schedule.get('isActive') else None,
        'location': location if location.get('isActive') else None,
    }


@main_bp.route('/')
def index():
    hero = resolve_hero(get_site_config())
    contact = _public_contact_settings()
    return render_template(
        'index.html',
        hero=hero,
        contact=contact,
        icon_classes=ICON_CSS_CLASSES,
    )
