"""Typed configuration sections validated at the store boundary.

Each section is declared once in ``SECTION_SCHEMAS``; ``normalize_section``
coerces incoming JSON into that shape, drops unknown keys and collects field
errors. Contact items get their own record schema because the collection also
carries the ordering invariant.
"""
from .contact_items import CONTACT_TYPES, ICON_CHOICES
from .utils import is_hex_color, is_valid_url, parse_int

CONTACT_SETTINGS_SECTIONS = ('contact_items', 'schedule_info', 'location_info')
SITE_CONFIG_KEYS = ('hero_section', 'general_info', 'hero_image')

SECTION_SCHEMAS = {
    'schedule_info': {
        'label': 'Business Hours',
        'fields': [
            {'key': 'week', 'type': 'text', 'max_length': 120, 'default': ''},
            {'key': 'saturday', 'type': 'text', 'max_length': 120, 'default': ''},
            {'key': 'sunday', 'type': 'text', 'max_length': 120, 'default': ''},
            {'key': 'additional', 'type': 'text', 'max_length': 1000, 'default': ''},
            {'key': 'isActive', 'type': 'bool', 'default': True},
        ],
    },
    'location_info': {
        'label': 'Location',
        'fields': [
            {'key': 'city', 'type': 'text', 'max_length': 200, 'default': ''},
            {'key': 'maps_link', 'type': 'url', 'max_length': 500, 'default': ''},
            {'key': 'isActive', 'type': 'bool', 'default': True},
        ],
    },
    'hero_section': {
        'label': 'Hero Section',
        'fields': [
            {'key': 'title', 'type': 'text', 'max_length': 200, 'default': ''},
            {'key': 'subtitle', 'type': 'text', 'max_length': 600, 'default': ''},
            {'key': 'buttonText1', 'type': 'text', 'max_length': 60, 'default': ''},
            {'key': 'buttonText2', 'type': 'text', 'max_length': 60, 'default': ''},
            {'key': 'buttonColor1', 'type': 'color', 'default': ''},
            {'key': 'buttonColor2', 'type': 'color', 'default': ''},
        ],
    },
    'general_info': {
        'label': 'General Information',
        'fields': [
            {'key': 'name', 'type': 'text', 'max_length': 200, 'default': ''},
            {'key': 'schedulingButtonColor', 'type': 'color', 'default': ''},
        ],
    },
    'hero_image': {
        'label': 'Hero Image',
        'fields': [
            {'key': 'path', 'type': 'path', 'max_length': 300, 'default': ''},
        ],
    },
}

CONTACT_ITEM_SCHEMA = {
    'label': 'Contact Button',
    'fields': [
        {'key': 'id', 'type': 'int', 'required': True, 'min': 1},
        {'key': 'type', 'type': 'choice', 'choices': CONTACT_TYPES, 'required': True},
        {'key': 'title', 'type': 'text', 'max_length': 120, 'required': True},
        {'key': 'description', 'type': 'text', 'max_length': 300, 'required': True},
        {'key': 'icon', 'type': 'choice', 'choices': ICON_CHOICES, 'required': True},
        {'key': 'color', 'type': 'color', 'required': True},
        {'key': 'link', 'type': 'text', 'max_length': 500, 'required': True},
        {'key': 'isActive', 'type': 'bool', 'default': True},
        {'key': 'order', 'type': 'int', 'required': True, 'min': 0},
    ],
}

# Fallbacks shown on the public page when a section value is missing.
HERO_FALLBACKS = {
    'name': 'Dra. Adrielle Benhossi',
    'title': 'Cuidando da sua saúde mental com carinho',
    'subtitle': (
        'Psicóloga especializada em terapia cognitivo-comportamental, oferecendo um espaço '
        'seguro e acolhedor para seu bem-estar emocional.'
    ),
    'buttonText1': 'Agendar consulta',
    'buttonText2': 'Saiba mais',
    'buttonColor1': '#ec4899',
    'buttonColor2': '#8b5cf6',
    'schedulingButtonColor': '#ec4899',
}


class SectionValidationError(ValueError):
    """Raised when a section payload does not match its schema.

    ``errors`` maps a dotted field path to a message.
    """

    def __init__(self, errors):
        self.errors = dict(errors)
        summary = '; '.join(f'{key}: {message}' for key, message in sorted(self.errors.items()))
        super().__init__(summary or 'Invalid section payload.')


def _coerce_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _normalize_fields(fields, raw, errors, prefix='', partial=False):
    result = {}
    for field in fields:
        key = field['key']
        path = f'{prefix}{key}'
        if key not in raw or raw[key] is None:
            if field.get('required'):
                errors[path] = 'This field is required.'
            elif not partial and 'default' in field:
                result[key] = field['default']
            continue

        value = raw[key]
        kind = field['type']
        if kind == 'bool':
            result[key] = _coerce_bool(value)
            continue
        if kind == 'int':
            parsed = parse_int(value)
            if parsed is None:
                errors[path] = 'Must be an integer.'
            elif parsed < field.get('min', parsed):
                errors[path] = f'Must be at least {field["min"]}.'
            else:
                result[key] = parsed
            continue

        text = str(value).strip()
        if field.get('required') and not text:
            errors[path] = 'This field is required.'
            continue
        if kind == 'choice' and text not in field['choices']:
            errors[path] = f'Must be one of: {", ".join(field["choices"])}.'
            continue
        if kind == 'color' and text and not is_hex_color(text):
            errors[path] = 'Must be a hex colour like #25D366.'
            continue
        if kind == 'url' and not is_valid_url(text):
            errors[path] = 'Must start with http:// or https://.'
            continue
        if kind == 'path' and text and not (text.startswith('/') or is_valid_url(text)):
            errors[path] = 'Must be an absolute path or an http(s) URL.'
            continue
        max_length = field.get('max_length')
        if max_length and len(text) > max_length:
            errors[path] = f'Must be at most {max_length} characters.'
            continue
        result[key] = text
    return result


def section_defaults(name):
    return {field['key']: field['default'] for field in SECTION_SCHEMAS[name]['fields']}


def normalize_section(name, raw, partial=False):
    """Validate one section value and return its normalized dict.

    With ``partial`` only the keys present in ``raw`` are returned, which lets
    callers merge a patch over a stored value.
    """
    schema = SECTION_SCHEMAS.get(name)
    if schema is None:
        raise SectionValidationError({name: 'Unknown configuration section.'})
    if not isinstance(raw, dict):
        raise SectionValidationError({name: 'Must be an object.'})
    errors = {}
    result = _normalize_fields(schema['fields'], raw, errors, prefix=f'{name}.', partial=partial)
    if errors:
        raise SectionValidationError(errors)
    return result


def normalize_contact_items(raw):
    """Validate a whole contact item collection.

    Ids must be unique and the ``order`` values must be exactly ``0..n-1``.
    The result is sorted by ``order``.
    """
    if not isinstance(raw, list):
        raise SectionValidationError({'contact_items': 'Must be a list.'})
    errors = {}
    items = []
    for index, entry in enumerate(raw):
        prefix = f'contact_items.{index}.'
        if not isinstance(entry, dict):
            errors[f'contact_items.{index}'] = 'Must be an object.'
            continue
        items.append(_normalize_fields(CONTACT_ITEM_SCHEMA['fields'], entry, errors, prefix=prefix))
    if errors:
        raise SectionValidationError(errors)

    ids = [item['id'] for item in items]
    if len(set(ids)) != len(ids):
        raise SectionValidationError({'contact_items': 'Item ids must be unique.'})
    orders = sorted(item['order'] for item in items)
    if orders != list(range(len(items))):
        raise SectionValidationError({'contact_items': 'Order values must be exactly 0..n-1.'})
    return sorted(items, key=lambda item: item['order'])


def normalize_contact_settings(payload):
    """Validate a contact settings write.

    Returns only the sub-objects present in ``payload``; each one replaces the
    stored value wholesale.
    """
    if not isinstance(payload, dict):
        raise SectionValidationError({'payload': 'Must be an object.'})
    present = [name for name in CONTACT_SETTINGS_SECTIONS if payload.get(name) is not None]
    if not present:
        raise SectionValidationError({
            'payload': f'Must include at least one of: {", ".join(CONTACT_SETTINGS_SECTIONS)}.',
        })
    changes = {}
    errors = {}
    for name in present:
        try:
            if name == 'contact_items':
                changes[name] = normalize_contact_items(payload[name])
            else:
                changes[name] = normalize_section(name, payload[name])
        except SectionValidationError as exc:
            errors.update(exc.errors)
    if errors:
        raise SectionValidationError(errors)
    return changes


def default_contact_settings(record_id):
    return {
        'id': record_id,
        'version': 0,
        'contact_items': [],
        'schedule_info': section_defaults('schedule_info'),
        'location_info': section_defaults('location_info'),
        'updated_at': None,
    }
