"""
Runtime configuration for the interop engine, loaded from YAML.

    debug: false
    interop:
      handles_cache_enabled: true
      max_diagnostic_keys: 50
"""
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from boxref.boxref_errors import BoxValidationError, render

CONFIG_ENV = "BOXREF_CONFIG"


@dataclass
class RuntimeConfig:
    handles_cache_enabled: bool = True
    debug: bool = False
    max_diagnostic_keys: int = 50

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RuntimeConfig':
        """Builds a config from the parsed YAML document. Unknown keys are ignored."""
        config = cls()
        if not data:
            return config
        if not isinstance(data, dict):
            raise BoxValidationError(render("config_type", option="<root>", expected="mapping",
                                            actual=type(data).__name__))
        interop = data.get("interop") or {}
        if not isinstance(interop, dict):
            raise BoxValidationError(render("config_type", option="interop", expected="mapping",
                                            actual=type(interop).__name__))
        if "debug" in data:
            config.debug = _typed("debug", data["debug"], bool)
        if "handles_cache_enabled" in interop:
            config.handles_cache_enabled = _typed(
                "interop.handles_cache_enabled", interop["handles_cache_enabled"], bool)
        if "max_diagnostic_keys" in interop:
            config.max_diagnostic_keys = _typed(
                "interop.max_diagnostic_keys", interop["max_diagnostic_keys"], int)
        return config


def _typed(option: str, value: Any, expected: type) -> Any:
    # bool is an int subclass; a YAML `true` is not a key count.
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise BoxValidationError(render("config_type", option=option, expected=expected.__name__,
                                        actual=type(value).__name__))
    return value


def load_config(path: Optional[str] = None) -> RuntimeConfig:
    """Loads config from `path`, else from $BOXREF_CONFIG, else returns defaults."""
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return RuntimeConfig()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return RuntimeConfig.from_dict(data)
