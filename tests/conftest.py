"""Shared fixtures for taracode tests."""

import os
from unittest.mock import MagicMock

import pytest
import yaml

import taracode.config as config_module


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Point the ~/.taracode paths at a temporary directory."""
    home = tmp_path / "home" / ".taracode"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yaml")
    # setenv first so values loaded from .env files are removed on teardown.
    for suffix in ("HOST", "KEY", "MODEL", "VENDOR", "NO_STREAM", "NO_SPINNER",
                   "VERBOSE", "MAX_ITERATIONS", "COMMAND_TIMEOUT", "RESPONSE_TIMEOUT"):
        monkeypatch.setenv("TARACODE_" + suffix, "")
        monkeypatch.delenv("TARACODE_" + suffix)
    return home


@pytest.fixture
def sample_config_data():
    """Minimal config.yaml data dict."""
    return {
        "host": "http://localhost:8000",
        "model": "qwen2.5-coder",
        "vendor": "vllm",
        "no-stream": False,
        "max-iterations": 5,
        "command-timeout": 30,
        "verbose": False,
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / "config.yaml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c
