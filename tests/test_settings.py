"""Tests for settings.conf loading."""

import pytest

from config import DEFAULTS, SettingsError, load_settings_conf


@pytest.fixture
def clean_env(monkeypatch):
    """Remove MARKET_* overrides so only the file and defaults apply."""
    for key in DEFAULTS:
        monkeypatch.delenv(f"MARKET_{key.upper()}", raising=False)
    return monkeypatch


def write_settings(directory, body):
    (directory / 'settings.conf').write_text("[DEFAULT]\n" + body)


def test_defaults_without_file(tmp_path, clean_env):
    settings = load_settings_conf(str(tmp_path))
    assert settings['offer_expiry_hours'] == 48
    assert settings['default_page_limit'] == 12
    assert settings['max_page_limit'] == 100
    assert settings['identity_provider'] == 'firebase'


def test_file_values_override_defaults(tmp_path, clean_env):
    write_settings(tmp_path, "offer_expiry_hours = 24\nlog_level = debug\n")
    settings = load_settings_conf(str(tmp_path))
    assert settings['offer_expiry_hours'] == 24
    assert settings['log_level'] == 'DEBUG'


def test_environment_overrides_file(tmp_path, clean_env):
    write_settings(tmp_path, "port = 8000\n")
    clean_env.setenv('MARKET_PORT', '9000')
    assert load_settings_conf(str(tmp_path))['port'] == 9000


def test_cors_origins_are_split(tmp_path, clean_env):
    write_settings(tmp_path, "cors_origins = http://a.test, http://b.test,\n")
    settings = load_settings_conf(str(tmp_path))
    assert settings['cors_origins'] == ['http://a.test', 'http://b.test']


@pytest.mark.parametrize("body,fragment", [
    ("offer_expiry_hours = soon\n", "offer_expiry_hours: expected an integer"),
    ("offer_expiry_hours = 0\n", "offer_expiry_hours must be at least 1"),
    ("identity_provider = ldap\n", "identity_provider must be one of"),
    ("default_page_limit = 50\nmax_page_limit = 20\n", "max_page_limit must be >= default_page_limit"),
])
def test_invalid_settings(tmp_path, clean_env, body, fragment):
    write_settings(tmp_path, body)
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    assert fragment in str(exc.value)


def test_sections_without_defaults(tmp_path, clean_env):
    (tmp_path / 'settings.conf').write_text("[database]\ndb_url = postgresql://x\n")
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    assert '[DEFAULT]' in str(exc.value)
