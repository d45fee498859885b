"""Shared fixtures for nodeflow tests."""

import pytest

from nodeflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at an empty temp location so user config never leaks in."""
    config_file = tmp_path / "configuration.json"
    monkeypatch.setattr("nodeflow.config.NODEFLOW_CONFIG_FILE", config_file)
    return config_file


@pytest.fixture(autouse=True)
def clean_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()
