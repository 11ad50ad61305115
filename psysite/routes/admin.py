import os
import uuid
from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, send_from_directory, session, abort, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from PIL import Image, UnidentifiedImageError
from werkzeug.security import check_password_hash, generate_password_hash
from werkzeug.utils import secure_filename

from ..contact_items import CONTACT_TYPE_LABELS, ICON_CSS_CLASSES, ContactItemNotFound
from ..forms import ContactItemForm, HeroForm, LocationForm, ScheduleForm
from ..manager import VISIBILITY_SECTIONS, ContactScheduleManager
from ..models import User
from ..sections import SectionValidationError
from ..store import ConfigStoreError, StaleVersionError, get_config_store
from ..utils import clean_text, parse_int
from ..write_queue import WriteSuperseded

admin_bp = Blueprint('admin', __name__)
AUTH_DUMMY_HASH = generate_password_hash('psysite::dummy-auth-check')
IMAGE_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'webp': {'image/webp'},
}


def _safe_upload_path(stored_name):
    upload_root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    raw_name = (stored_name or '').strip()
    safe_name = secure_filename(raw_name)
    if not safe_name or safe_name != raw_name:
        return None, None
    full_path = os.path.abspath(os.path.join(upload_root, safe_name))
    try:
        if os.path.commonpath([upload_root, full_path]) != upload_root:
            return None, None
    except ValueError:
        return None, None
    return safe_name, full_path


def validate_uploaded_image(file):
    if not file or not file.filename:
        return False

    filename = secure_filename(file.filename)
    if not filename or len(filename) > 180 or '.' not in filename:
        return False
    extension = filename.rsplit('.', 1)[1].lower()
    if extension not in current_app.config['ALLOWED_IMAGE_EXTENSIONS']:
        return False
    mime_type = (file.mimetype or '').split(';', 1)[0].lower()
    if mime_type not in IMAGE_MIME_TYPES.get(extension, set()):
        return False

    max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
    file.stream.seek(0)
    try:
        with Image.open(file.stream) as image:
            width, height = image.size
            if width < 1 or height < 1 or (width * height) > max_pixels:
                return False
            image.verify()
        return True
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
        return False
    finally:
        file.stream.seek(0)


def save_image_upload(file):
    if not validate_uploaded_image(file):
        return None
    filename = secure_filename(file.filename)
    unique_name = f"{uuid.uuid4().hex[:16]}_{filename}"
    file.save(os.path.join(current_app.config['UPLOAD_FOLDER'], unique_name))
    return unique_name


def load_manager():
    store = get_config_store()
    record_id = current_app.config.get('CONTACT_SETTINGS_ID', 1)
    return ContactScheduleManager(store.read(record_id), store.persist)


def await_write(future, success_message):
    """Wait for a persistence future and flash its outcome.

    Returns the stored record, or None when the write did not go through. The
    manager's snapshot keeps the optimistic value either way.
    """
    timeout = float(current_app.config.get('CONFIG_STORE_TIMEOUT_SECONDS') or 10.0)
    try:
        record = future.result(timeout=timeout)
    except StaleVersionError:
        current_app.logger.warning('Contact settings write rejected as stale.')
        flash('These settings were changed in another session. Reload the page and try again.', 'warning')
        return None
    except SectionValidationError as exc:
        for field, message in sorted(exc.errors.items()):
            flash(f'{field}: {message}', 'danger')
        return None
    except WriteSuperseded:
        flash('A newer change replaced this one before it was saved.', 'info')
        return None
    except FutureTimeoutError:
        current_app.logger.warning('Contact settings write still pending after %.1fs.', timeout)
        flash('The configuration store is slow to respond; your change is still being saved.', 'warning')
        return None
    except ConfigStoreError:
        current_app.logger.exception('Contact settings write failed.')
        flash('Could not save your changes. Please try again.', 'danger')
        return None
    flash(success_message, 'success')
    return record


def _item_not_found(item_id):
    current_app.logger.warning('Contact item %s not found.', item_id)
    flash('That contact button no longer exists.', 'warning')
    return redirect(url_for('admin.contact_settings'))


@admin_bp.route('/uploads/<filename>')
def uploaded_file(filename):
    safe_filename, full_path = _safe_upload_path(filename)
    if not safe_filename or not full_path or not os.path.exists(full_path):
        abort(404)
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], safe_filename, conditional=True, etag=True)


# Auth
@admin_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('admin.dashboard'))
    if request.method == 'POST':
        username = clean_text(request.form.get('username'), 80)
        password = request.form.get('password', '')
        user = User.query.filter_by(username=username).first()
        password_ok = False
        if user:
            password_ok = user.check_password(password)
        else:
            # Keep response timing closer for unknown usernames.
            check_password_hash(AUTH_DUMMY_HASH, password or '')
        if user and password_ok:
            session.clear()
            login_user(user)
            return redirect(url_for('admin.dashboard'))
        flash('Invalid credentials.', 'danger')
    return render_template('admin/login.html')


@admin_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return redirect(url_for('admin.login'))


# Dashboard
@admin_bp.route('/')
@login_required
def dashboard():
    manager = load_manager()
    items = manager.items
    stats = {
        'contact_items': len(items),
        'active_contact_items': sum(1 for item in items if item.get('isActive', True)),
        'schedule_visible': bool(manager.schedule.get('isActive')),
        'location_visible': bool(manager.location.get('isActive')),
        'version': manager.snapshot.get('version') or 0,
        'updated_at': manager.snapshot.get('updated_at'),
    }
    return render_template('admin/dashboard.html', stats=stats)


# Contact buttons, business hours and location
@admin_bp.route('/contact-settings')
@login_required
def contact_settings():
    manager = load_manager()
    return render_template(
        'admin/contact_settings.html',
        items=manager.items,
        schedule_form=ScheduleForm(data=manager.schedule),
        location_form=LocationForm(data=manager.location),
        schedule=manager.schedule,
        location=manager.location,
        type_labels=CONTACT_TYPE_LABELS,
        icon_classes=ICON_CSS_CLASSES,
        drag_config={
            'distance': current_app.config.get('DRAG_POINTER_DISTANCE_PX', 8),
            'delay': current_app.config.get('DRAG_TOUCH_DELAY_MS', 250),
            'tolerance': current_app.config.get('DRAG_TOUCH_TOLERANCE_PX', 5),
        },
    )


@admin_bp.route('/contact-settings/items/add', methods=['GET', 'POST'])
@login_required
def contact_item_add():
    form = ContactItemForm()
    if form.validate_on_submit():
        manager = load_manager()
        record = await_write(manager.save_item(form.item_fields()), 'Contact button created.')
        if record is not None:
            return redirect(url_for('admin.contact_settings'))
    return render_template('admin/contact_item_form.html', form=form, item=None)


@admin_bp.route('/contact-settings/items/<int:item_id>/edit', methods=['GET', 'POST'])
@login_required
def contact_item_edit(item_id):
    manager = load_manager()
    item = manager.find_item(item_id)
    if item is None:
        return _item_not_found(item_id)
    form = ContactItemForm(data=item) if request.method == 'GET' else ContactItemForm()
    if form.validate_on_submit():
        try:
            future = manager.save_item(form.item_fields(), item_id=item_id)
        except ContactItemNotFound:
            return _item_not_found(item_id)
        if await_write(future, 'Contact button updated.') is not None:
            return redirect(url_for('admin.contact_settings'))
    return render_template('admin/contact_item_form.html', form=form, item=item)


@admin_bp.route('/contact-settings/items/<int:item_id>/delete', methods=['POST'])
@login_required
def contact_item_delete(item_id):
    manager = load_manager()
    try:
        future = manager.delete_item(item_id)
    except ContactItemNotFound:
        return _item_not_found(item_id)
    await_write(future, 'Contact button deleted.')
    return redirect(url_for('admin.contact_settings'))


@admin_bp.route('/contact-settings/items/reorder', methods=['POST'])
@login_required
def contact_items_reorder():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({'status': 'error', 'error': 'active_id is required.'}), 400
    active_id = parse_int(payload.get('active_id'))
    over_id = parse_int(payload.get('over_id'))
    if active_id is None:
        return jsonify({'status': 'error', 'error': 'active_id is required.'}), 400

    manager = load_manager()
    future = manager.handle_drag_end(active_id, over_id)
    if future is None:
        return jsonify({'status': 'ignored', 'contact_items': manager.items})

    timeout = float(current_app.config.get('CONFIG_STORE_TIMEOUT_SECONDS') or 10.0)
    try:
        record = future.result(timeout=timeout)
    except StaleVersionError:
        return jsonify({'status': 'error', 'error': 'stale_version'}), 409
    except SectionValidationError as exc:
        return jsonify({'status': 'error', 'error': 'invalid', 'errors': exc.errors}), 422
    except (ConfigStoreError, WriteSuperseded, FutureTimeoutError):
        current_app.logger.exception('Reorder write failed.')
        return jsonify({'status': 'error', 'error': 'store_unavailable'}), 502
    return jsonify({
        'status': 'ok',
        'version': record.get('version'),
        'contact_items': record.get('contact_items', manager.items),
    })


@admin_bp.route('/contact-settings/schedule', methods=['POST'])
@login_required
def contact_schedule_update():
    form = ScheduleForm()
    if not form.validate():
        for field, messages in form.errors.items():
            flash(f'{form[field].label.text}: {messages[0]}', 'danger')
        return redirect(url_for('admin.contact_settings'))
    manager = load_manager()
    await_write(manager.update_schedule(form.data), 'Business hours saved.')
    return redirect(url_for('admin.contact_settings'))


@admin_bp.route('/contact-settings/location', methods=['POST'])
@login_required
def contact_location_update():
    form = LocationForm()
    if not form.validate():
        for field, messages in form.errors.items():
            flash(f'{form[field].label.text}: {messages[0]}', 'danger')
        return redirect(url_for('admin.contact_settings'))
    manager = load_manager()
    await_write(manager.update_location(form.data), 'Location saved.')
    return redirect(url_for('admin.contact_settings'))


@admin_bp.route('/contact-settings/visibility', methods=['POST'])
@login_required
def contact_visibility_update():
    section = clean_text(request.form.get('section'), 40)
    if section not in VISIBILITY_SECTIONS:
        flash('Unknown section.', 'danger')
        return redirect(url_for('admin.contact_settings'))
    is_active = request.form.get('is_active') in {'1', 'true', 'on'}
    manager = load_manager()
    label = 'Business hours' if section == 'schedule_info' else 'Location'
    state = 'shown' if is_active else 'hidden'
    await_write(manager.set_visibility(section, is_active), f'{label} {state} on the site.')
    return redirect(url_for('admin.contact_settings'))


# Hero section
@admin_bp.route('/hero', methods=['GET', 'POST'])
@login_required
def hero():
    store = get_config_store()
    hero_section = store.get_config('hero_section')
    general_info = store.get_config('general_info')
    hero_image = store.get_config('hero_image')

    if request.method == 'GET':
        form = HeroForm(data=dict(hero_section, **general_info))
    else:
        form = HeroForm()
    if form.validate_on_submit():
        image_path = hero_image.get('path', '')
        upload = form.image.data
        if upload and getattr(upload, 'filename', ''):
            stored_name = save_image_upload(upload)
            if not stored_name:
                flash('Hero image must be a valid PNG, JPEG or WebP file.', 'danger')
                return render_template('admin/hero.html', form=form, hero_image=hero_image)
            image_path = url_for('admin.uploaded_file', filename=stored_name)
        if request.form.get('remove_image'):
            image_path = ''
        try:
            store.put_config('hero_section', form.hero_section())
            store.put_config('general_info', form.general_info())
            store.put_config('hero_image', {'path': image_path})
        except SectionValidationError as exc:
            for field, message in sorted(exc.errors.items()):
                flash(f'{field}: {message}', 'danger')
            return render_template('admin/hero.html', form=form, hero_image=hero_image)
        except ConfigStoreError:
            current_app.logger.exception('Hero section write failed.')
            flash('Could not save the hero section. Please try again.', 'danger')
            return render_template('admin/hero.html', form=form, hero_image=hero_image)
        flash('Hero section saved.', 'success')
        return redirect(url_for('admin.hero'))
    return render_template('admin/hero.html', form=form, hero_image=hero_image)
