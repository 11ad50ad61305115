"""Admin-side editing of the contact settings record.

The manager holds the last snapshot read from the store. Each operation
computes the new value of one sub-object, then issues exactly one wholesale
write carrying ``contact_items``, ``schedule_info`` and ``location_info``,
echoing the snapshot for the two that did not change. No-op operations issue
no write and return None.

The snapshot is updated optimistically when a write is issued and is not
rolled back if the write fails.
"""
import logging

from . import contact_items as ordered
from .models import DEFAULT_CONTACT_SETTINGS_ID
from .sections import CONTACT_SETTINGS_SECTIONS, section_defaults

logger = logging.getLogger(__name__)

VISIBILITY_SECTIONS = ('schedule_info', 'location_info')


class ContactScheduleManager:
    def __init__(self, snapshot, persist):
        self.snapshot = dict(snapshot or {})
        self._persist = persist

    @property
    def record_id(self):
        return self.snapshot.get('id') or DEFAULT_CONTACT_SETTINGS_ID

    @property
    def items(self):
        return ordered.sorted_items(self.snapshot.get('contact_items') or [])

    @property
    def schedule(self):
        return dict(section_defaults('schedule_info'), **(self.snapshot.get('schedule_info') or {}))

    @property
    def location(self):
        return dict(section_defaults('location_info'), **(self.snapshot.get('location_info') or {}))

    def find_item(self, item_id):
        for item in self.items:
            if item.get('id') == item_id:
                return item
        return None

    def wholesale_payload(self, **changes):
        payload = {
            'contact_items': self.snapshot.get('contact_items') or [],
            'schedule_info': self.schedule,
            'location_info': self.location,
        }
        payload.update(changes)
        return {name: payload[name] for name in CONTACT_SETTINGS_SECTIONS}

    def _write(self, on_success=None, on_error=None, **changes):
        payload = self.wholesale_payload(**changes)
        expected_version = self.snapshot.get('version')
        self.snapshot.update(payload)

        def _stored(record):
            if isinstance(record, dict) and record.get('version') is not None:
                self.snapshot['version'] = record['version']
            if on_success is not None:
                on_success(record)

        return self._persist(
            self.record_id,
            payload,
            expected_version=expected_version,
            on_success=_stored,
            on_error=on_error,
        )

    def save_item(self, fields, item_id=None, on_success=None, on_error=None):
        """Create a new item, or replace the fields of ``item_id``.

        Raises ``ContactItemNotFound`` when ``item_id`` matches nothing.
        """
        if item_id is None:
            items = ordered.insert_item(self.items, fields)
        else:
            items = ordered.update_item(self.items, item_id, fields)
        return self._write(on_success, on_error, contact_items=items)

    def delete_item(self, item_id, on_success=None, on_error=None):
        items = ordered.delete_item(self.items, item_id)
        return self._write(on_success, on_error, contact_items=items)

    def reorder(self, from_index, to_index, on_success=None, on_error=None):
        items = ordered.move_item(self.items, from_index, to_index)
        if items is None:
            return None
        return self._write(on_success, on_error, contact_items=items)

    def handle_drag_end(self, active_id, over_id, on_success=None, on_error=None):
        positions = ordered.resolve_drag(self.items, active_id, over_id)
        if positions is None:
            logger.debug('Drag from %r onto %r discarded.', active_id, over_id)
            return None
        return self.reorder(*positions, on_success=on_success, on_error=on_error)

    def update_schedule(self, fields, on_success=None, on_error=None):
        schedule = dict(self.schedule)
        schedule.update({key: fields[key] for key in schedule if key in fields})
        return self._write(on_success, on_error, schedule_info=schedule)

    def update_location(self, fields, on_success=None, on_error=None):
        location = dict(self.location)
        location.update({key: fields[key] for key in location if key in fields})
        return self._write(on_success, on_error, location_info=location)

    def set_visibility(self, section, is_active, on_success=None, on_error=None):
        if section not in VISIBILITY_SECTIONS:
            raise ValueError(f'Unknown visibility section {section!r}.')
        if section == 'schedule_info':
            return self.update_schedule({'isActive': bool(is_active)}, on_success, on_error)
        return self.update_location({'isActive': bool(is_active)}, on_success, on_error)
