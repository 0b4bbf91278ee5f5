"""
Configuration for taracode.

Loading priority (later wins):
  1. Built-in defaults
  2. YAML file: --config path, else ~/.taracode/config.yaml
  3. Environment: TARACODE_* (after loading ~/.taracode/.env and ./.env)
  4. Command-line flags (applied by the CLI via Config.override)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".taracode"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
HISTORY_FILE = CONFIG_DIR / "history"
ENV_PREFIX = "TARACODE_"

VENDORS = {"auto", "vllm", "ollama", "llama.cpp", "llamacpp", "llama"}

DEFAULT_BLOCKED_COMMANDS = [
    "rm -rf /", "rm -rf /*", "mkfs", "dd if=", "> /dev/sda",
    ":(){:|:&};:",  # fork bomb
]


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "bool", "list"
    default: Any
    validator: Optional[Callable[[Any], tuple]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple:
    """Validate integer within range."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_vendor(value: Any) -> tuple:
    vendor = str(value or "").strip().lower()
    if vendor and vendor not in VENDORS:
        return False, "", f"Must be one of: {', '.join(sorted(VENDORS))}"
    return True, vendor, ""


def _validate_str(value: Any) -> tuple:
    if value is None:
        return True, "", ""
    return True, str(value).strip(), ""


def _validate_str_list(value: Any) -> tuple:
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, list):
        items = [str(part).strip() for part in value]
    else:
        return False, [], "Must be a list of strings"
    return True, [item for item in items if item], ""


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    spec.key: spec for spec in [
        ConfigFieldSpec("host", "host", "LLM server URL", "str", "", _validate_str),
        ConfigFieldSpec("key", "api_key", "API key (optional for local servers)", "str", "",
                        _validate_str),
        ConfigFieldSpec("model", "model", "Preferred model (auto-detected if empty)", "str", "",
                        _validate_str),
        ConfigFieldSpec("vendor", "vendor", "Server vendor: auto, vllm, ollama, llama.cpp",
                        "str", "", _validate_vendor),
        ConfigFieldSpec("no-stream", "no_stream", "Disable streaming responses", "bool", False,
                        _validate_bool),
        ConfigFieldSpec("no-spinner", "no_spinner", "Disable spinner animations", "bool", False,
                        _validate_bool),
        ConfigFieldSpec("verbose", "verbose", "Verbose logging", "bool", False, _validate_bool),
        ConfigFieldSpec("max-iterations", "max_iterations", "Tool rounds per message (1-50)",
                        "int", 10, lambda v: _validate_int_range(v, 1, 50)),
        ConfigFieldSpec("command-timeout", "command_timeout",
                        "Default execute_command timeout in seconds (1-3600)", "int", 60,
                        lambda v: _validate_int_range(v, 1, 3600)),
        ConfigFieldSpec("response-timeout", "response_timeout",
                        "Time budget for one message in seconds (10-3600)", "int", 300,
                        lambda v: _validate_int_range(v, 10, 3600)),
        ConfigFieldSpec("blocked-commands", "blocked_commands",
                        "Shell commands execute_command refuses", "list",
                        DEFAULT_BLOCKED_COMMANDS, _validate_str_list),
    ]
}

_ENV_KEYS = {
    "HOST": "host",
    "KEY": "key",
    "MODEL": "model",
    "VENDOR": "vendor",
    "NO_STREAM": "no-stream",
    "NO_SPINNER": "no-spinner",
    "VERBOSE": "verbose",
    "MAX_ITERATIONS": "max-iterations",
    "COMMAND_TIMEOUT": "command-timeout",
    "RESPONSE_TIMEOUT": "response-timeout",
}


def validate_config_value(key: str, value: Any) -> tuple:
    """Validate one config value. Returns (valid, coerced_value, error_msg)."""
    spec = CONFIG_FIELDS.get(key)
    if spec is None:
        return False, None, f"Unknown config key: {key}"
    if spec.validator is None:
        return True, value, ""
    return spec.validator(value)


@dataclass
class Config:
    host: str = ""
    api_key: str = ""
    model: str = ""
    vendor: str = ""
    no_stream: bool = False
    no_spinner: bool = False
    verbose: bool = False
    max_iterations: int = 10
    command_timeout: int = 60
    response_timeout: int = 300
    blocked_commands: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    project_root: str = "."
    _config_source: str = ""

    @property
    def streaming(self) -> bool:
        return not self.no_stream

    @property
    def spinner(self) -> bool:
        return not self.no_spinner

    @property
    def config_source(self) -> str:
        return self._config_source

    @classmethod
    def load(cls, config_file: Optional[str] = None, project_dir: str = ".") -> "Config":
        config = cls()
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        project_path = Path(project_dir).resolve()
        config.project_root = str(project_path)

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        candidate = Path(config_file).expanduser() if config_file else CONFIG_FILE
        if candidate.exists():
            config._load_yaml(candidate)
            config._config_source = str(candidate)
        elif config_file:
            _log.warning("Config file not found: %s", candidate)

        config._apply_env()
        return config

    def _set(self, key: str, value: Any, source: str) -> None:
        valid, coerced, error = validate_config_value(key, value)
        if not valid:
            _log.warning("Ignoring %s=%r from %s: %s", key, value, source, error)
            return
        setattr(self, CONFIG_FIELDS[key].field_name, coerced)

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Cannot read config %s: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Config %s is not a mapping; ignored", filepath)
            return

        for key, value in data.items():
            key = str(key).replace("_", "-")
            if key in CONFIG_FIELDS:
                self._set(key, value, str(filepath))
            else:
                _log.info("Unknown config key %r in %s", key, filepath)

    def _apply_env(self):
        for suffix, key in _ENV_KEYS.items():
            value = os.environ.get(ENV_PREFIX + suffix)
            if value:
                self._set(key, value, ENV_PREFIX + suffix)

    def override(self, **flags: Any) -> None:
        """Apply command-line flags; ``None`` and ``False`` mean not given."""
        for field_name, value in flags.items():
            if value is None or value is False:
                continue
            key = next(
                (k for k, spec in CONFIG_FIELDS.items() if spec.field_name == field_name),
                None,
            )
            if key is None:
                raise ValueError(f"Unknown config field: {field_name}")
            self._set(key, value, "command line")

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)
        data = {key: getattr(self, spec.field_name) for key, spec in CONFIG_FIELDS.items()}
        with open(target, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def summary(self) -> dict:
        return {
            "Host": self.host or "(not set)",
            "Vendor": self.vendor or "auto",
            "Model": self.model or "(auto-detect)",
            "API key": "set" if self.api_key else "not set",
            "Streaming": "ON" if self.streaming else "OFF",
            "Spinner": "ON" if self.spinner else "OFF",
            "Max iterations": self.max_iterations,
            "Command timeout": f"{self.command_timeout}s",
            "Response timeout": f"{self.response_timeout}s",
            "Project": self.project_root,
            "Config": self._config_source or "(defaults)",
        }
