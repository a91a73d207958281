from __future__ import annotations

import os

from .base import BaseAppSettings
from .local import LocalSettings
from .prod import ProdSettings
from .stage import StageSettings
from .test import TestSettings

# Mode selector: MODE env var, else APP_ENV, else 'local'
MODE = (os.environ.get("MODE") or os.environ.get("APP_ENV") or "local").lower()

_MAPPING: dict[str, type[BaseAppSettings]] = {
    "local": LocalSettings,
    "stage": StageSettings,
    "staging": StageSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
    "test": TestSettings,
}

# Modes that must never sign sessions with the development fallback key
_DEPLOYED_MODES = {"stage", "staging", "prod", "production"}


def _choose_settings_class(mode: str) -> type[BaseAppSettings]:
    return _MAPPING.get(mode, LocalSettings)


def _check_deployed_settings(mode: str, loaded: BaseAppSettings) -> None:
    if mode in _DEPLOYED_MODES and not loaded.SECRET_KEY:
        raise RuntimeError(f"SECRET_KEY must be set when MODE={mode}")


SettingsClass = _choose_settings_class(MODE)
settings = SettingsClass()
_check_deployed_settings(MODE, settings)

__all__ = ["settings", "SettingsClass", "MODE"]
