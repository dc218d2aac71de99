"""Engine configuration: YAML config + env var overrides.

Priority: env var > YAML file > default.
Env vars use CORRIGIBLE_{FIELD_NAME} convention (e.g. CORRIGIBLE_DETECT_CYCLES=off).
YAML file default: ~/.corrigible/config.yaml
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

_TRUTHY = {"1", "true", "on", "yes"}
_FALSY = {"0", "false", "off", "no"}
_DEFAULT_PATH = Path("~/.corrigible/config.yaml").expanduser()


@dataclass
class EngineConfig:
    # Fail fast with CascadeCycleDetected when a chain re-enters a
    # correction that is still propagating.
    detect_cycles: bool = True
    # Raise RegistrationConflict on duplicate names instead of a no-op.
    strict_registration: bool = False
    # Hard ceiling on chain depth, checked even with cycle detection off.
    max_cascade_depth: int = 64

    @classmethod
    def load(cls, path: Path | None = None) -> EngineConfig:
        """Load config from YAML file, then override with env vars."""
        file_path = path or _DEFAULT_PATH
        file_values: dict[str, Any] = {}

        if file_path.exists():
            raw = yaml.safe_load(file_path.read_text()) or {}
            if isinstance(raw, dict):
                file_values = raw

        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            name = f.name
            env_key = f"CORRIGIBLE_{name.upper()}"
            default = f.default

            if env_key in os.environ:
                val = _coerce(os.environ[env_key], default)
                if val is not None:
                    kwargs[name] = val
            elif name in file_values:
                val = _coerce(file_values[name], default)
                if val is not None:
                    kwargs[name] = val
            # else: use dataclass default

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(value: Any, default: Any) -> Any:
    """Coerce a raw YAML/env value to the type of the field default.

    Returns None for values that can't be interpreted, so the caller
    falls through to the default.
    """
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).lower()
        if text in _TRUTHY:
            return True
        if text in _FALSY:
            return False
        return None
    if isinstance(default, int):
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return value


# Singleton
_config: EngineConfig | None = None


def get_config(path: Path | None = None) -> EngineConfig:
    """Get the singleton EngineConfig instance."""
    global _config
    if _config is None:
        _config = EngineConfig.load(path)
    return _config


def reset_config() -> None:
    """Reset for testing."""
    global _config
    _config = None
