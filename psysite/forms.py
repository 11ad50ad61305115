"""Flask-WTF forms for the admin panel.

Field names match the JSON keys stored in the configuration sections, so the
schedule and location forms hand ``form.data`` to the manager unchanged.
"""
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField
from wtforms import BooleanField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional, Regexp

from .contact_items import CONTACT_TYPE_LABELS, CONTACT_TYPES, ICON_CHOICES


class _BaseForm(FlaskForm):
    class Meta:
        # CSRF is enforced globally in app.before_request.
        csrf = False


_color_validator = Regexp(r"^#[0-9a-fA-F]{6}$", message='Use a hex colour like #25D366.')
_optional_color_validator = Regexp(r"^(#[0-9a-fA-F]{6})?$", message='Use a hex colour like #25D366.')
_http_url_validator = Regexp(r"^(https?://\S+)?$", message='Link must start with http:// or https://.')


class ContactItemForm(_BaseForm):
    type = SelectField(
        'Type',
        choices=[(key, CONTACT_TYPE_LABELS[key]) for key in CONTACT_TYPES],
        validators=[DataRequired(message='Type is required.')],
        default='whatsapp',
    )
    icon = SelectField(
        'Icon',
        choices=[(key, key) for key in ICON_CHOICES],
        validators=[DataRequired(message='Icon is required.')],
        default='MessageCircle',
    )
    title = StringField('Title', validators=[DataRequired(message='Title is required.'), Length(max=120)])
    description = StringField(
        'Description',
        validators=[DataRequired(message='Description is required.'), Length(max=300)],
    )
    color = StringField(
        'Colour',
        validators=[DataRequired(message='Colour is required.'), _color_validator],
        default='#25D366',
    )
    link = StringField('Link', validators=[DataRequired(message='Link is required.'), Length(max=500)])
    isActive = BooleanField('Show this contact button', default=True)

    def item_fields(self):
        return {
            'type': self.type.data,
            'icon': self.icon.data,
            'title': self.title.data.strip(),
            'description': self.description.data.strip(),
            'color': self.color.data.strip(),
            'link': self.link.data.strip(),
            'isActive': bool(self.isActive.data),
        }


class ScheduleForm(_BaseForm):
    week = StringField('Monday to Friday', validators=[Optional(), Length(max=120)])
    saturday = StringField('Saturday', validators=[Optional(), Length(max=120)])
    sunday = StringField('Sunday', validators=[Optional(), Length(max=120)])
    additional = TextAreaField('Additional information', validators=[Optional(), Length(max=1000)])


class LocationForm(_BaseForm):
    city = StringField('City', validators=[Optional(), Length(max=200)])
    maps_link = StringField('Map link', validators=[Optional(), Length(max=500), _http_url_validator])


class HeroForm(_BaseForm):
    name = StringField('Practitioner name', validators=[Optional(), Length(max=200)])
    title = StringField('Title', validators=[Optional(), Length(max=200)])
    subtitle = TextAreaField('Subtitle', validators=[Optional(), Length(max=600)])
    buttonText1 = StringField('Primary button text', validators=[Optional(), Length(max=60)])
    buttonText2 = StringField('Secondary button text', validators=[Optional(), Length(max=60)])
    buttonColor1 = StringField('Primary button colour', validators=[Optional(), _optional_color_validator])
    buttonColor2 = StringField('Secondary button colour', validators=[Optional(), _optional_color_validator])
    schedulingButtonColor = StringField('Scheduling button colour', validators=[Optional(), _optional_color_validator])
    image = FileField('Hero image', validators=[FileAllowed(['png', 'jpg', 'jpeg', 'webp'], 'Images only.')])

    def hero_section(self):
        return {
            key: (getattr(self, key).data or '').strip()
            for key in ('title', 'subtitle', 'buttonText1', 'buttonText2', 'buttonColor1', 'buttonColor2')
        }

    def general_info(self):
        return {
            'name': (self.name.data or '').strip(),
            'schedulingButtonColor': (self.schedulingButtonColor.data or '').strip(),
        }
