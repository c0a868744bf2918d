"""Configuration module for Sort Inbox."""

from .settings import (
    Config,
    VaultConfig,
    GeminiConfig,
    AutoClassifyConfig,
    ClassificationOptions,
    API_KEY_ENV_VAR,
)

__all__ = [
    "Config",
    "VaultConfig",
    "GeminiConfig",
    "AutoClassifyConfig",
    "ClassificationOptions",
    "API_KEY_ENV_VAR",
]
