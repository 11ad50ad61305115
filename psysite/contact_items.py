"""Ordered contact item collection.

A collection is a plain list of item dicts. Every function here returns a new
list and leaves its input untouched. After any mutation the ``order`` values,
read in display order, are exactly ``0..n-1``.
"""

CONTACT_TYPES = ('whatsapp', 'instagram', 'email', 'phone')
CONTACT_TYPE_LABELS = {
    'whatsapp': 'WhatsApp',
    'instagram': 'Instagram',
    'email': 'Email',
    'phone': 'Phone',
}
ICON_CHOICES = ('MessageCircle', 'Instagram', 'Mail', 'Phone')
ICON_CSS_CLASSES = {
    'MessageCircle': 'fa-brands fa-whatsapp',
    'Instagram': 'fa-brands fa-instagram',
    'Mail': 'fa-solid fa-envelope',
    'Phone': 'fa-solid fa-phone',
}
EDITABLE_FIELDS = ('type', 'title', 'description', 'icon', 'color', 'link', 'isActive')


class ContactItemNotFound(LookupError):
    def __init__(self, item_id):
        super().__init__(f'No contact item with id {item_id!r}.')
        self.item_id = item_id


def _sort_key(item):
    order = item.get('order')
    return (order if isinstance(order, int) else 0, item.get('id') or 0)


def sorted_items(items):
    """Return copies of ``items`` in display order."""
    return [dict(item) for item in sorted(items or [], key=_sort_key)]


def renumber(items):
    return [dict(item, order=index) for index, item in enumerate(items)]


def next_item_id(items):
    return max((item.get('id') or 0 for item in items or []), default=0) + 1


def insert_item(items, fields):
    ordered = sorted_items(items)
    new_item = {key: fields.get(key) for key in EDITABLE_FIELDS if key in fields}
    new_item['id'] = next_item_id(ordered)
    new_item['order'] = len(ordered)
    ordered.append(new_item)
    return renumber(ordered)


def update_item(items, item_id, fields):
    """Replace the editable fields of one item; ``id`` and ``order`` are kept."""
    ordered = sorted_items(items)
    for index, item in enumerate(ordered):
        if item.get('id') == item_id:
            updated = dict(item)
            updated.update({key: fields[key] for key in EDITABLE_FIELDS if key in fields})
            ordered[index] = updated
            return ordered
    raise ContactItemNotFound(item_id)


def delete_item(items, item_id):
    ordered = sorted_items(items)
    remaining = [item for item in ordered if item.get('id') != item_id]
    if len(remaining) == len(ordered):
        raise ContactItemNotFound(item_id)
    return renumber(remaining)


def move_item(items, from_index, to_index):
    """Move one element from ``from_index`` to ``to_index`` and renumber.

    Returns None when the move would not change anything: equal positions or
    a position outside the collection.
    """
    ordered = sorted_items(items)
    size = len(ordered)
    if from_index == to_index:
        return None
    if not (0 <= from_index < size) or not (0 <= to_index < size):
        return None
    moved = ordered.pop(from_index)
    ordered.insert(to_index, moved)
    return renumber(ordered)


def resolve_drag(items, active_id, over_id):
    """Map a drag-end event to ``(from_index, to_index)`` positions.

    ``over_id`` is None when the element was dropped outside any target.
    Returns None when the gesture should be discarded.
    """
    if over_id is None or active_id == over_id:
        return None
    positions = {item.get('id'): index for index, item in enumerate(sorted_items(items))}
    if active_id not in positions or over_id not in positions:
        return None
    return positions[active_id], positions[over_id]


def active_items(items):
    return [item for item in sorted_items(items) if item.get('isActive', True)]
