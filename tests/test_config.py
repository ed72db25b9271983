import pytest

from swingadmin.config import (
    CONFIG_PATH_ENV,
    ConfigurationError,
    Settings,
    load_settings,
)


REQUIRED = {
    "ADMIN_EMAIL": "Admin@Example.com",
    "SUPABASE_URL": "https://project.supabase.test/",
    "SUPABASE_ANON_KEY": "anon",
    "SUPABASE_SERVICE_ROLE_KEY": "service",
    "ADMIN_SESSION_SECRET": "secret",
}


def test_settings_from_environment():
    settings = load_settings(dict(REQUIRED))

    assert settings.admin.email == "admin@example.com"
    assert settings.supabase_url == "https://project.supabase.test"
    assert settings.secure_cookies is True
    assert settings.site_url is None
    assert settings.http_timeout == 10.0


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_required_value_fails_fast(missing):
    environ = dict(REQUIRED)
    environ[missing] = "   "

    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(environ)

    assert missing in str(excinfo.value)


def test_yaml_file_is_overlaid_by_environment(tmp_path):
    config_file = tmp_path / "admin.yaml"
    config_file.write_text(
        "admin_email: file-admin@example.com\n"
        "supabase_url: https://file.supabase.test\n"
        "supabase_anon_key: file-anon\n"
        "supabase_service_role_key: file-service\n"
        "admin_session_secret: file-secret\n"
        "admin_session_secure: false\n"
        "admin_http_timeout: 3.5\n",
        encoding="utf-8",
    )

    settings = load_settings(
        {CONFIG_PATH_ENV: str(config_file), "ADMIN_EMAIL": "env-admin@example.com"}
    )

    assert settings.admin.email == "env-admin@example.com"
    assert settings.supabase_anon_key == "file-anon"
    assert settings.secure_cookies is False
    assert settings.http_timeout == 3.5


def test_missing_config_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_settings(dict(REQUIRED), config_path=tmp_path / "absent.yaml")


def test_config_file_must_hold_a_mapping(tmp_path):
    config_file = tmp_path / "admin.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(dict(REQUIRED), config_path=config_file)


def test_invalid_timeout():
    with pytest.raises(ConfigurationError):
        Settings.from_mapping(dict(REQUIRED, ADMIN_HTTP_TIMEOUT="soon"))


def test_site_url_is_trimmed():
    settings = Settings.from_mapping(dict(REQUIRED, ADMIN_SITE_URL="https://admin.test/"))

    assert settings.site_url == "https://admin.test"
