from swingadmin.navigation import navigation_for


def _active(path):
    return [link.label for link in navigation_for(path) if link.active]


def test_dashboard_is_active_only_on_root():
    assert _active("/") == ["Dashboard"]
    assert "Dashboard" not in _active("/messages")


def test_new_message_is_not_highlighted_as_the_list():
    assert _active("/messages/new") == ["New message"]
    assert _active("/messages") == ["Messages"]
    assert _active("/messages/abc/edit") == ["Messages"]


def test_nested_user_pages_highlight_users():
    assert _active("/users/123") == ["Users"]
    assert _active("/data") == ["Data"]


def test_links_keep_their_order():
    assert [link.href for link in navigation_for("/")] == [
        "/",
        "/messages",
        "/messages/new",
        "/users",
        "/data",
    ]
