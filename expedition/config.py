"""
Configuration: orchestration tunables with project-level overrides.

Loading priority:
  1. Project dir .expedition.yml
  2. Global ~/.expedition/config.yml

Environment variables (optionally from a .env file) override both.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

CONFIG_DIR = Path.home() / ".expedition"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".expedition.yml"


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field metadata with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> tuple[bool, float, str]:
    """Validate a number of seconds within range."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, 0.0, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val:g} and {max_val:g}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
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


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "poll-interval": ConfigFieldSpec(
        key="poll-interval",
        field_name="poll_interval",
        description="Seconds between executor status polls",
        value_type="float",
        default=1.0,
        validator=lambda v: _validate_float_range(v, 0.1, 30.0),
    ),
    "max-retry-per-task": ConfigFieldSpec(
        key="max-retry-per-task",
        field_name="max_retry_per_task",
        description="Retries allowed for a task that produced too few items",
        value_type="int",
        default=2,
        validator=lambda v: _validate_int_range(v, 0, 10),
    ),
    "retry-delay": ConfigFieldSpec(
        key="retry-delay",
        field_name="retry_delay",
        description="Seconds to wait before re-dispatching a short task",
        value_type="float",
        default=3.0,
        validator=lambda v: _validate_float_range(v, 0.0, 120.0),
    ),
    "settle-delay": ConfigFieldSpec(
        key="settle-delay",
        field_name="settle_delay",
        description="Seconds to wait between tasks for the executor to settle",
        value_type="float",
        default=2.0,
        validator=lambda v: _validate_float_range(v, 0.0, 60.0),
    ),
    "idle-wait-timeout": ConfigFieldSpec(
        key="idle-wait-timeout",
        field_name="idle_wait_timeout",
        description="Max seconds to wait for a busy executor before dispatching anyway",
        value_type="float",
        default=30.0,
        validator=lambda v: _validate_float_range(v, 0.0, 600.0),
    ),
    "startup-grace": ConfigFieldSpec(
        key="startup-grace",
        field_name="startup_grace",
        description="Seconds after a dispatch before an idle executor can end the job",
        value_type="float",
        default=8.0,
        validator=lambda v: _validate_float_range(v, 0.0, 120.0),
    ),
    "busy-confirm-timeout": ConfigFieldSpec(
        key="busy-confirm-timeout",
        field_name="busy_confirm_timeout",
        description="Seconds after the grace window to wait for the executor to report busy",
        value_type="float",
        default=15.0,
        validator=lambda v: _validate_float_range(v, 0.0, 300.0),
    ),
    "craft-quantity-buffer": ConfigFieldSpec(
        key="craft-quantity-buffer",
        field_name="craft_quantity_buffer",
        description="Extra units added to every craft target",
        value_type="int",
        default=0,
        validator=lambda v: _validate_int_range(v, 0, 999),
    ),
    "gather-quantity-buffer": ConfigFieldSpec(
        key="gather-quantity-buffer",
        field_name="gather_quantity_buffer",
        description="Extra units added to every gather target",
        value_type="int",
        default=0,
        validator=lambda v: _validate_int_range(v, 0, 999),
    ),
    "preferred-solver": ConfigFieldSpec(
        key="preferred-solver",
        field_name="preferred_solver",
        description="Solver the crafting tool should use (empty = tool default)",
        value_type="str",
        default="",
        validator=None,
    ),
    "halt-on-missing-materials": ConfigFieldSpec(
        key="halt-on-missing-materials",
        field_name="halt_on_missing_materials",
        description="Stop the workflow when non-gatherable materials or gathers are missing",
        value_type="bool",
        default=True,
        validator=_validate_bool,
    ),
    "skip-after-failed-step": ConfigFieldSpec(
        key="skip-after-failed-step",
        field_name="skip_after_failed_step",
        description="Skip remaining craft steps once one step has failed",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
    "notify-on-completion": ConfigFieldSpec(
        key="notify-on-completion",
        field_name="notify_on_completion",
        description="Send completion and error notices to the notifier",
        value_type="bool",
        default=True,
        validator=_validate_bool,
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable verbose debug output",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]
    if spec.validator:
        return spec.validator(value)

    if spec.value_type == "str":
        return True, "" if value is None else str(value), ""
    return True, value, ""


@dataclass
class Config:
    poll_interval: float = 1.0
    max_retry_per_task: int = 2
    retry_delay: float = 3.0
    settle_delay: float = 2.0
    idle_wait_timeout: float = 30.0
    startup_grace: float = 8.0
    busy_confirm_timeout: float = 15.0
    craft_quantity_buffer: int = 0
    gather_quantity_buffer: int = 0
    preferred_solver: str = ""
    halt_on_missing_materials: bool = True
    skip_after_failed_step: bool = False
    notify_on_completion: bool = True
    verbose: bool = False
    fishing_config: Dict = field(default_factory=dict)  # fishing: section from YAML
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        config_loaded = False
        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                config_loaded = True
                break

        if not config_loaded:
            config._config_source = str(CONFIG_FILE)
            config.save()

        config._apply_env()
        config.project_root = str(project_path)
        return config

    @classmethod
    def from_file(cls, filepath: str) -> "Config":
        """Load one explicit YAML file; no fallbacks, no defaults written."""
        path = Path(filepath)
        if not path.exists():
            raise ConfigError(f"Config file not found: {filepath}")
        config = cls()
        config._load_yaml(path)
        config._config_source = str(path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {filepath}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config root in {filepath} must be a mapping")

        for key in CONFIG_FIELDS:
            if key in data:
                self._assign(key, data[key])

        self.fishing_config = data.get("fishing", {}) or {}

    def _apply_env(self):
        env_map = {
            "EXPEDITION_VERBOSE": "verbose",
            "EXPEDITION_SOLVER": "preferred-solver",
            "EXPEDITION_MAX_RETRIES": "max-retry-per-task",
        }
        for env_var, key in env_map.items():
            val = os.environ.get(env_var)
            if val:
                self._assign(key, val)

    def _assign(self, key: str, value: Any) -> None:
        spec = CONFIG_FIELDS[key]
        valid, coerced, _ = validate_config_value(key, value)
        # Out-of-range numbers come back clamped; anything unparseable keeps the current value.
        if valid or (spec.value_type in ("int", "float") and _is_number(value)):
            setattr(self, spec.field_name, coerced)

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)

        data = {
            key: getattr(self, spec.field_name) for key, spec in CONFIG_FIELDS.items()
        }
        if self.fishing_config:
            data["fishing"] = self.fishing_config

        with open(target, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def orchestrator_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments shared by both task orchestrators."""
        return {
            "poll_interval": self.poll_interval,
            "max_retries": self.max_retry_per_task,
            "retry_delay": self.retry_delay,
            "settle_delay": self.settle_delay,
            "idle_wait_timeout": self.idle_wait_timeout,
            "startup_grace": self.startup_grace,
            "busy_confirm_timeout": self.busy_confirm_timeout,
        }

    @property
    def solver_preference(self) -> Optional[str]:
        return self.preferred_solver or None

    @property
    def source(self) -> str:
        return self._config_source

    def get_config_value(self, key: str) -> Any:
        """Get configuration value by key."""
        if key not in CONFIG_FIELDS:
            return None
        spec = CONFIG_FIELDS[key]
        return getattr(self, spec.field_name, spec.default)

    def set_config_value(self, key: str, value: Any) -> tuple[bool, str]:
        """
        Set configuration value with validation.

        Returns:
            (success, error_message)
        """
        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            return False, error_msg

        spec = CONFIG_FIELDS[key]
        setattr(self, spec.field_name, coerced_value)
        self.save()
        return True, ""

    def reset_config_value(self, key: str) -> tuple[bool, str]:
        """
        Reset configuration value to default.

        Returns:
            (success, error_message)
        """
        if key not in CONFIG_FIELDS:
            return False, f"Unknown configuration key: {key}"

        spec = CONFIG_FIELDS[key]
        setattr(self, spec.field_name, spec.default)
        self.save()
        return True, ""

    def get_config_diff(self) -> Dict[str, Dict[str, Any]]:
        """
        Get configuration differences from defaults.

        Returns:
            Dict with keys: 'modified', 'default'
        """
        result = {"modified": {}, "default": {}}

        for key, spec in CONFIG_FIELDS.items():
            current_value = getattr(self, spec.field_name, spec.default)
            bucket = "default" if current_value == spec.default else "modified"
            result[bucket][key] = {
                "current": current_value,
                "default": spec.default,
                "type": spec.value_type,
                "description": spec.description,
            }

        return result


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True
