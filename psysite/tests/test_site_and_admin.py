from concurrent.futures import Future

from psysite.models import ContactSettings, SiteConfig, db
from psysite.store import ConfigStoreError

from conftest import admin_login, extract_csrf_token


def stored_contact_settings(app):
    with app.app_context():
        return db.session.get(ContactSettings, 1).to_dict()


def item_ids(record):
    return [item["id"] for item in record["contact_items"]]


def test_public_page_shows_seeded_content(client):
    response = client.get("/")
    html = response.get_data(as_text=True)

    assert response.status_code == 200
    assert '<span class="text-gradient">saúde mental</span>' in html
    assert "contact-item-1" in html
    assert 'id="schedule"' in html
    assert 'id="location"' in html
    assert "Content-Security-Policy" in response.headers
    assert response.headers["X-Frame-Options"] == "DENY"


def test_health_and_readiness(client):
    assert client.get("/healthz").get_json() == {"status": "ok"}
    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert all(ready.get_json()["checks"].values())


def test_admin_requires_login(client):
    response = client.get("/admin/contact-settings", follow_redirects=False)
    assert response.status_code in (302, 303)
    assert "/admin/login" in response.headers["Location"]
    assert response.headers["X-Robots-Tag"].startswith("noindex")


def test_post_without_csrf_token_is_rejected(app, client):
    admin_login(client)
    response = client.post("/admin/contact-settings/items/1/delete", follow_redirects=False)

    assert response.status_code in (302, 303)
    assert item_ids(stored_contact_settings(app)) == [1, 2, 3]


def test_add_contact_item(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/items/add",
        data={
            "_csrf_token": csrf_token,
            "type": "phone",
            "icon": "Phone",
            "title": "Telefone",
            "description": "Ligue para agendar",
            "color": "#0EA5E9",
            "link": "tel:+5544000000000",
            "isActive": "y",
        },
        follow_redirects=False,
    )

    assert response.status_code in (302, 303)
    record = stored_contact_settings(app)
    assert record["version"] == 2
    new_item = record["contact_items"][-1]
    assert (new_item["id"], new_item["order"], new_item["title"]) == (4, 3, "Telefone")
    assert record["schedule_info"]["week"] == "08:00 - 18:00"


def test_add_contact_item_shows_field_errors_without_writing(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/items/add",
        data={
            "_csrf_token": csrf_token,
            "type": "phone",
            "icon": "Phone",
            "title": "",
            "description": "Ligue para agendar",
            "color": "blue",
            "link": "tel:+5544000000000",
        },
    )
    html = response.get_data(as_text=True)

    assert response.status_code == 200
    assert "Title is required." in html
    assert "Use a hex colour like #25D366." in html
    assert stored_contact_settings(app)["version"] == 1


def test_edit_contact_item_keeps_id_and_order(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/items/2/edit",
        data={
            "_csrf_token": csrf_token,
            "type": "instagram",
            "icon": "Instagram",
            "title": "Instagram oficial",
            "description": "Conteúdos semanais",
            "color": "#E4405F",
            "link": "https://instagram.com/psi",
        },
        follow_redirects=False,
    )

    assert response.status_code in (302, 303)
    edited = stored_contact_settings(app)["contact_items"][1]
    assert (edited["id"], edited["order"], edited["title"]) == (2, 1, "Instagram oficial")
    assert edited["isActive"] is False


def test_edit_unknown_contact_item_redirects_with_warning(app, client):
    admin_login(client)
    response = client.get("/admin/contact-settings/items/99/edit", follow_redirects=True)

    assert "That contact button no longer exists." in response.get_data(as_text=True)
    assert stored_contact_settings(app)["version"] == 1


def test_delete_contact_item_renumbers(app, client):
    csrf_token = admin_login(client)
    client.post("/admin/contact-settings/items/2/delete", data={"_csrf_token": csrf_token})

    record = stored_contact_settings(app)
    assert [(item["id"], item["order"]) for item in record["contact_items"]] == [(1, 0), (3, 1)]


def test_reorder_endpoint_moves_dragged_item(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/items/reorder",
        json={"active_id": 3, "over_id": 1},
        headers={"X-CSRF-Token": csrf_token},
    )

    body = response.get_json()
    assert response.status_code == 200
    assert body["status"] == "ok"
    assert body["version"] == 2
    assert [item["id"] for item in body["contact_items"]] == [3, 1, 2]
    assert item_ids(stored_contact_settings(app)) == [3, 1, 2]


def test_reorder_endpoint_ignores_drop_outside_list(app, client):
    csrf_token = admin_login(client)
    headers = {"X-CSRF-Token": csrf_token}

    ignored = client.post("/admin/contact-settings/items/reorder", json={"active_id": 2, "over_id": None}, headers=headers)
    missing = client.post("/admin/contact-settings/items/reorder", json={}, headers=headers)

    assert ignored.get_json()["status"] == "ignored"
    assert missing.status_code == 400
    assert stored_contact_settings(app)["version"] == 1


def test_schedule_save_keeps_visibility_and_items(app, client):
    csrf_token = admin_login(client)
    client.post(
        "/admin/contact-settings/visibility",
        data={"_csrf_token": csrf_token, "section": "schedule_info", "is_active": "0"},
    )
    client.post(
        "/admin/contact-settings/schedule",
        data={"_csrf_token": csrf_token, "week": "09:00 - 17:00", "saturday": "", "sunday": "Fechado", "additional": ""},
    )

    record = stored_contact_settings(app)
    assert record["version"] == 3
    assert record["schedule_info"]["week"] == "09:00 - 17:00"
    assert record["schedule_info"]["isActive"] is False
    assert item_ids(record) == [1, 2, 3]
    assert record["location_info"]["city"] == "Campo Mourão, Paraná"


def test_hidden_sections_disappear_from_public_page(client):
    csrf_token = admin_login(client)
    for section in ("schedule_info", "location_info"):
        client.post(
            "/admin/contact-settings/visibility",
            data={"_csrf_token": csrf_token, "section": section, "is_active": "0"},
        )

    html = client.get("/").get_data(as_text=True)
    assert 'id="schedule"' not in html
    assert 'id="location"' not in html
    assert "contact-item-1" in html


def test_inactive_contact_item_is_hidden_publicly(client):
    csrf_token = admin_login(client)
    client.post(
        "/admin/contact-settings/items/1/edit",
        data={
            "_csrf_token": csrf_token,
            "type": "whatsapp",
            "icon": "MessageCircle",
            "title": "WhatsApp",
            "description": "Agende sua consulta",
            "color": "#25D366",
            "link": "https://wa.me/5544000000000",
        },
    )

    html = client.get("/").get_data(as_text=True)
    assert "contact-item-1" not in html
    assert "contact-item-2" in html


def test_location_form_rejects_non_http_link(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/location",
        data={"_csrf_token": csrf_token, "city": "Maringá", "maps_link": "javascript:alert(1)"},
        follow_redirects=True,
    )

    assert "Link must start with http:// or https://." in response.get_data(as_text=True)
    assert stored_contact_settings(app)["version"] == 1


def test_hero_update_escapes_and_highlights_title(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/hero",
        data={
            "_csrf_token": csrf_token,
            "name": "Dra. Teste",
            "title": "<b>Olá</b> (mundo)",
            "subtitle": "Subtítulo",
            "buttonText1": "Agendar",
            "buttonText2": "Sobre",
            "buttonColor1": "#111111",
            "buttonColor2": "",
            "schedulingButtonColor": "#222222",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    with app.app_context():
        hero = SiteConfig.query.filter_by(key="hero_section").first().data
    assert hero["buttonColor1"] == "#111111"

    html = client.get("/").get_data(as_text=True)
    assert '&lt;b&gt;Olá&lt;/b&gt; <span class="text-gradient">mundo</span>' in html
    assert "--button-color-2: #8b5cf6;" in html
    assert "--scheduling-color: #222222;" in html


def test_login_rejects_wrong_password(client):
    login_page = client.get("/admin/login")
    csrf_token = extract_csrf_token(login_page.get_data(as_text=True))
    response = client.post(
        "/admin/login",
        data={"_csrf_token": csrf_token, "username": "admin", "password": "wrong"},
    )

    assert response.status_code == 200
    assert "Invalid credentials." in response.get_data(as_text=True)


def fail_store_writes(app, monkeypatch):
    def persist(record_id, payload, expected_version=None, on_success=None, on_error=None):
        error = ConfigStoreError("store unreachable")
        future = Future()
        future.set_exception(error)
        if on_error:
            on_error(error)
        return future

    monkeypatch.setattr(app.extensions["config_store"], "persist", persist)


def test_reorder_endpoint_rejects_non_object_body(app, client):
    csrf_token = admin_login(client)
    response = client.post(
        "/admin/contact-settings/items/reorder",
        json=[1, 2],
        headers={"X-CSRF-Token": csrf_token},
    )

    assert response.status_code == 400
    assert response.get_json()["status"] == "error"
    assert stored_contact_settings(app)["version"] == 1


def test_failed_write_shows_one_error_notification(app, client, monkeypatch):
    csrf_token = admin_login(client)
    fail_store_writes(app, monkeypatch)

    response = client.post(
        "/admin/contact-settings/items/2/delete",
        data={"_csrf_token": csrf_token},
        follow_redirects=True,
    )

    html = response.get_data(as_text=True)
    assert html.count("Could not save your changes. Please try again.") == 1
    assert "Contact button deleted." not in html
    assert item_ids(stored_contact_settings(app)) == [1, 2, 3]


def test_failed_reorder_write_returns_store_unavailable(app, client, monkeypatch):
    csrf_token = admin_login(client)
    fail_store_writes(app, monkeypatch)

    response = client.post(
        "/admin/contact-settings/items/reorder",
        json={"active_id": 3, "over_id": 1},
        headers={"X-CSRF-Token": csrf_token},
    )

    assert response.status_code == 502
    assert response.get_json() == {"status": "error", "error": "store_unavailable"}
    assert item_ids(stored_contact_settings(app)) == [1, 2, 3]


def test_sortable_script_applies_pointer_distance_to_mouse_drags(client):
    admin_login(client)
    page = client.get("/admin/contact-settings").get_data(as_text=True)
    script = client.get("/static/js/admin-sortable.js").get_data(as_text=True)

    assert 'data-drag-distance="8"' in page
    assert "forceFallback: true" in script
    assert "fallbackTolerance: Number(list.dataset.dragDistance" in script
