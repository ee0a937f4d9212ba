"""Lifecycle policy file loading and hot reload."""

import pytest

from repairdesk.config import Settings
from repairdesk.core import ConfigurationException
from repairdesk.tickets.infrastructure import PolicyConfigManager


@pytest.fixture
def app_settings():
    return Settings(warranty_months=12, return_window_days=30, capacity_limit=3)


def test_missing_file_uses_settings_defaults(tmp_path, app_settings):
    manager = PolicyConfigManager(app_settings)
    policy = manager.load(tmp_path / "absent.yaml")

    assert policy.warranty_months == 12
    assert policy.return_window_days == 30
    assert policy.capacity_limit == 3
    assert manager.get_policy() == policy


def test_file_overrides_settings(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("warranty_months: 36\ncapacity_limit: 8\n")

    policy = PolicyConfigManager(app_settings).load(path)

    assert policy.warranty_months == 36
    assert policy.capacity_limit == 8
    assert policy.return_window_days == 30


def test_empty_file_uses_defaults(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("")
    assert PolicyConfigManager(app_settings).load(path).capacity_limit == 3


def test_invalid_values_rejected_on_load(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("capacity_limit: 0\n")
    with pytest.raises(ConfigurationException):
        PolicyConfigManager(app_settings).load(path)


def test_non_mapping_rejected(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationException):
        PolicyConfigManager(app_settings).load(path)


def test_reload_picks_up_changes(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("return_window_days: 15\n")
    manager = PolicyConfigManager(app_settings)
    manager.load(path)

    path.write_text("return_window_days: 20\n")
    assert manager.reload() is True
    assert manager.get_policy().return_window_days == 20


def test_bad_reload_keeps_previous_policy(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("return_window_days: 15\n")
    manager = PolicyConfigManager(app_settings)
    manager.load(path)

    path.write_text("return_window_days: [not, a, number]\n")
    assert manager.reload() is False
    assert manager.get_policy().return_window_days == 15


def test_reload_before_load_is_noop(app_settings):
    assert PolicyConfigManager(app_settings).reload() is False


def test_get_policy_before_load_fails(app_settings):
    with pytest.raises(RuntimeError):
        PolicyConfigManager(app_settings).get_policy()


def test_watch_lifecycle(tmp_path, app_settings):
    path = tmp_path / "policy.yaml"
    path.write_text("capacity_limit: 4\n")
    manager = PolicyConfigManager(app_settings)
    manager.load(path)

    manager.start_watching()
    manager.stop_watching()
    manager.stop_watching()


def test_watch_requires_load(app_settings):
    with pytest.raises(RuntimeError):
        PolicyConfigManager(app_settings).start_watching()
