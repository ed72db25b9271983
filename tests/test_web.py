from swingadmin.models import ANALYSES_TABLE, MESSAGES_TABLE, PROFILES_TABLE
from swingadmin.storage import StorageError


PROFILE = {
    "id": "player-id",
    "created_at": "2025-03-01T10:00:00+00:00",
    "updated_at": "2025-03-02T10:00:00+00:00",
    "full_name": "Ana Lopez",
    "email": "someone@example.com",
    "handicap": 12.4,
    "marketing_consent": True,
    "preferences": {"units": "metric"},
}


def test_login_page_redirects_signed_in_admin(admin_client):
    response = admin_client.get("/login", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].endswith("/")


def test_dashboard_renders_message_stats_and_metrics(admin_client, storage):
    storage.seed(
        MESSAGES_TABLE,
        {"id": "m1", "title": "Latest news", "is_active": True, "target_user_ids": ["a"],
         "start_date": "2999-01-01T00:00:00Z", "updated_at": "2025-05-01T00:00:00Z"},
        {"id": "m2", "title": "Older", "is_active": False, "target_user_ids": None,
         "updated_at": "2025-04-01T00:00:00Z"},
    )
    storage.counts[ANALYSES_TABLE] = 9

    response = admin_client.get("/")

    assert response.status_code == 200
    assert "Latest news" in response.text
    assert "Swing analyses (30 days)" in response.text
    assert "admin@example.com" in response.text


def test_dashboard_survives_storage_failures(admin_client, storage):
    storage.failures["select"] = StorageError("boom", status_code=500)
    storage.failing_counts.update({PROFILES_TABLE, ANALYSES_TABLE})

    response = admin_client.get("/")

    assert response.status_code == 200
    assert "No messages yet." in response.text
    assert "shown as zero" in response.text


def test_messages_page_lists_rows_with_toggle_forms(admin_client, storage):
    storage.seed(
        MESSAGES_TABLE,
        {"id": "m1", "title": "Range day", "type": "overlay", "content_type": "markdown",
         "is_active": True, "priority": 3},
    )

    response = admin_client.get("/messages")

    assert response.status_code == 200
    assert "Range day" in response.text
    assert "Overlay" in response.text
    assert "Deactivate" in response.text


def test_create_message_from_form_with_uploaded_targets(admin_client, storage):
    response = admin_client.post(
        "/messages/new",
        data={
            "title": "Targeted tip",
            "content": "Keep your head still.",
            "content_type": "text",
            "type": "banner",
            "priority": "not-a-number",
            "is_active": "on",
        },
        files={"target_file": ("targets.json", b'{"userIds": ["u1", " u2 ", ""]}', "application/json")},
        follow_redirects=False,
    )

    assert response.status_code == 303
    (_, table, values), = storage.mutations()
    assert table == MESSAGES_TABLE
    assert values["target_user_ids"] == ["u1", "u2"]
    assert values["priority"] == 0
    assert values["is_active"] is True
    assert values["requires_marketing_consent"] is False


def test_create_message_with_bad_upload_keeps_the_form(admin_client, storage):
    response = admin_client.post(
        "/messages/new",
        data={"title": "Tip", "content": "Body"},
        files={"target_file": ("targets.txt", b"u1", "text/plain")},
    )

    assert response.status_code == 400
    assert "Targeting files must be .csv or .json." in response.text
    assert 'value="Tip"' in response.text
    assert storage.mutations() == []


def test_toggle_and_delete_from_the_list(admin_client, storage):
    storage.seed(MESSAGES_TABLE, {"id": "m1", "title": "Range day", "is_active": False})

    toggled = admin_client.post("/messages/m1/toggle", data={"is_active": "true"}, follow_redirects=False)
    assert toggled.status_code == 303
    assert storage.tables[MESSAGES_TABLE][0]["is_active"] is True

    deleted = admin_client.post("/messages/m1/delete", follow_redirects=False)
    assert deleted.status_code == 303
    assert storage.tables[MESSAGES_TABLE] == []


def test_edit_missing_message_redirects_to_list(admin_client):
    response = admin_client.get("/messages/nope/edit", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].endswith("/messages")


def test_users_search_filters_by_email(admin_client, storage):
    storage.seed(
        PROFILES_TABLE,
        PROFILE,
        {"id": "other", "full_name": "Ben", "email": "ben@example.com"},
    )

    response = admin_client.get("/users", params={"q": "someone"})

    assert response.status_code == 200
    assert "Ana Lopez" in response.text
    assert "Ben" not in response.text
    assert ("select", PROFILES_TABLE, {"email": "ilike.*someone*"}) in storage.calls


def test_user_editor_renders_scalar_fields_only(admin_client, storage):
    storage.seed(PROFILES_TABLE, PROFILE)

    response = admin_client.get("/users/player-id")

    assert response.status_code == 200
    assert 'name="full_name"' in response.text
    assert 'name="marketing_consent"' in response.text
    assert 'name="preferences"' not in response.text
    assert 'name="created_at"' not in response.text


def test_user_editor_submits_partial_update(admin_client, storage):
    storage.seed(PROFILES_TABLE, PROFILE)

    response = admin_client.post(
        "/users/player-id",
        data={"full_name": "Ana L.", "email": "someone@example.com", "handicap": "10.0", "id": "hijack"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    (_, _, record_id, values), = storage.mutations()
    assert record_id == "player-id"
    assert values == {
        "full_name": "Ana L.",
        "email": "someone@example.com",
        "handicap": 10,
        "marketing_consent": False,
    }


def test_user_editor_saves_bigint_columns_exactly(admin_client, storage):
    serial = 12345678901234567891
    storage.seed(PROFILES_TABLE, {"id": "player-id", "full_name": "Ana Lopez", "device_serial": serial})

    page = admin_client.get("/users/player-id")
    assert f'value="{serial}"' in page.text

    response = admin_client.post(
        "/users/player-id",
        data={"full_name": "Ana Lopez", "device_serial": str(serial)},
        follow_redirects=False,
    )

    assert response.status_code == 303
    (_, _, _, values), = storage.mutations()
    assert values == {"full_name": "Ana Lopez", "device_serial": serial}
    assert storage.tables[PROFILES_TABLE][0]["device_serial"] == serial


def test_user_editor_keeps_submitted_values_when_storage_fails(admin_client, storage):
    storage.seed(PROFILES_TABLE, PROFILE)
    storage.failures["update_partial"] = StorageError("value too long", status_code=400)

    response = admin_client.post(
        "/users/player-id",
        data={"full_name": "Ana Typed", "email": "someone@example.com", "handicap": "11"},
    )

    assert response.status_code == 502
    assert "value too long" in response.text
    assert 'value="Ana Typed"' in response.text
    assert storage.tables[PROFILES_TABLE][0]["full_name"] == "Ana Lopez"


def test_user_without_editable_fields(admin_client, storage):
    storage.seed(PROFILES_TABLE, {"id": "bare", "created_at": "x", "updated_at": "y"})

    response = admin_client.get("/users/bare")

    assert response.status_code == 200
    assert "no editable fields" in response.text


def test_reset_password_from_user_page(admin_client, storage, auth):
    storage.seed(PROFILES_TABLE, PROFILE)

    response = admin_client.post("/users/player-id/reset-password", follow_redirects=False)

    assert response.status_code == 303
    assert auth.reset_requests[0]["email"] == "someone@example.com"

    page = admin_client.get("/users/player-id")
    assert "Password reset email sent." in page.text


def test_data_page(admin_client, storage):
    storage.counts[PROFILES_TABLE] = 4

    response = admin_client.get("/data")

    assert response.status_code == 200
    assert "Registered players" in response.text


def test_pages_require_admin(player_client):
    for path in ("/", "/messages", "/messages/new", "/users", "/users/player-id", "/data"):
        response = player_client.get(path, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"
