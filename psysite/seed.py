import os
import secrets

from flask import current_app

from .models import db, User, SiteConfig, ContactSettings, DEFAULT_CONTACT_SETTINGS_ID

DEFAULT_SITE_CONFIG = {
    'general_info': {
        'name': 'Dra. Adrielle Benhossi',
        'schedulingButtonColor': '#ec4899',
    },
    'hero_section': {
        'title': 'Cuidando da sua (saúde mental) com carinho',
        'subtitle': (
            'Psicóloga especializada em terapia cognitivo-comportamental, oferecendo um espaço '
            'seguro e acolhedor para seu bem-estar emocional.'
        ),
        'buttonText1': 'Agendar consulta',
        'buttonText2': 'Saiba mais',
        'buttonColor1': '#ec4899',
        'buttonColor2': '#8b5cf6',
    },
    'hero_image': {'path': ''},
}

DEFAULT_CONTACT_ITEMS = [
    {
        'id': 1,
        'type': 'whatsapp',
        'title': 'WhatsApp',
        'description': 'Agende sua consulta',
        'icon': 'MessageCircle',
        'color': '#25D366',
        'link': 'https://wa.me/5544000000000',
        'isActive': True,
        'order': 0,
    },
    {
        'id': 2,
        'type': 'instagram',
        'title': 'Instagram',
        'description': 'Acompanhe conteúdos sobre saúde mental',
        'icon': 'Instagram',
        'color': '#E4405F',
        'link': 'https://instagram.com/',
        'isActive': True,
        'order': 1,
    },
    {
        'id': 3,
        'type': 'email',
        'title': 'Email',
        'description': 'Envie sua mensagem',
        'icon': 'Mail',
        'color': '#6366F1',
        'link': 'mailto:contato@example.com',
        'isActive': True,
        'order': 2,
    },
]

DEFAULT_SCHEDULE = {
    'week': '08:00 - 18:00',
    'saturday': '08:00 - 12:00',
    'sunday': 'Fechado',
    'additional': '',
    'isActive': True,
}

DEFAULT_LOCATION = {
    'city': 'Campo Mourão, Paraná',
    'maps_link': 'https://maps.google.com/?q=Campo+Mour%C3%A3o',
    'isActive': True,
}


def seed_site_config():
    for key, value in DEFAULT_SITE_CONFIG.items():
        if SiteConfig.query.filter_by(key=key).first() is None:
            row = SiteConfig(key=key)
            row.set_data(value)
            db.session.add(row)


def seed_contact_settings():
    if db.session.get(ContactSettings, DEFAULT_CONTACT_SETTINGS_ID) is not None:
        return
    record = ContactSettings(id=DEFAULT_CONTACT_SETTINGS_ID)
    record.set_section('contact_items', DEFAULT_CONTACT_ITEMS)
    record.set_section('schedule_info', DEFAULT_SCHEDULE)
    record.set_section('location_info', DEFAULT_LOCATION)
    db.session.add(record)


def seed_database():
    env_password = os.environ.get('ADMIN_PASSWORD') or ''

    # Always sync admin password with env var on startup
    if env_password:
        try:
            existing_admin = User.query.filter_by(username='admin').first()
            if existing_admin:
                existing_admin.set_password(env_password)
                db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Failed to sync admin password from ADMIN_PASSWORD.')

    if User.query.order_by(User.id.asc()).first() is None:
        if not env_password:
            env_password = secrets.token_urlsafe(16)
            current_app.logger.warning(
                'ADMIN_PASSWORD not set. Seeded admin with a random password. '
                'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
            )
        admin = User(username='admin', email='admin@example.com')
        admin.set_password(env_password)
        db.session.add(admin)

    seed_site_config()
    seed_contact_settings()
    db.session.commit()
