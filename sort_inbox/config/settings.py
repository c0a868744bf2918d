"""
Configuration Management System
===============================

Provides dataclass-based configuration with YAML file loading support.
All settings are validated and have sensible defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Any, Dict
import yaml

from sort_inbox.utils.exceptions import ConfigurationError
from sort_inbox.utils.logging_config import get_logger, LoggingConfig

logger = get_logger(__name__)

API_KEY_ENV_VAR = "GEMINI_API_KEY"
API_KEY_STATUSES = ("unverified", "valid", "invalid", "error")


def _clean_folders(folders: Any) -> List[str]:
    """Normalize a configured folder list, dropping blanks and trailing slashes."""
    if folders is None:
        return []
    if isinstance(folders, str):
        folders = [folders]
    cleaned = []
    for folder in folders:
        name = str(folder).strip().strip("/")
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


@dataclass
class VaultConfig:
    """Note vault layout.

    Attributes:
        root: Vault root directory on disk.
        inbox_folder: Vault-relative folder whose direct children are sorted.
            Empty means the vault root.
        target_folders: Ordered folder names the model may choose from.
            Earlier entries win ties when several names match.
    """
    root: Path = field(default_factory=lambda: Path.home() / "Notes")
    inbox_folder: str = "Inbox"
    target_folders: List[str] = field(default_factory=lambda: [
        "Tech Notes", "Journal", "Thinking Log"
    ])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultConfig":
        """Create VaultConfig from dictionary."""
        if not data:
            return cls()
        defaults = cls()
        root = data.get("root")
        return cls(
            root=Path(root).expanduser() if root else defaults.root,
            inbox_folder=str(data.get("inbox_folder", defaults.inbox_folder) or "").strip().strip("/"),
            target_folders=_clean_folders(data.get("target_folders", defaults.target_folders)),
        )


@dataclass
class GeminiConfig:
    """Remote model service settings.

    Attributes:
        api_key: Gemini API key. Falls back to $GEMINI_API_KEY when empty.
        model: Model name used in the generateContent URL.
        base_url: API base URL.
        api_key_status: Result of the last key verification.
        last_api_key_verification: Epoch milliseconds of that verification.
    """
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    api_key_status: str = "unverified"
    last_api_key_verification: Optional[int] = None

    def resolved_api_key(self) -> str:
        """Return the configured key, or the environment key when unset."""
        return self.api_key or os.getenv(API_KEY_ENV_VAR, "")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeminiConfig":
        """Create GeminiConfig from dictionary."""
        if not data:
            return cls()
        status = data.get("api_key_status", cls.api_key_status)
        if status not in API_KEY_STATUSES:
            raise ConfigurationError(
                f"api_key_status must be one of {', '.join(API_KEY_STATUSES)}",
                config_key="gemini.api_key_status",
            )
        last_check = data.get("last_api_key_verification")
        return cls(
            api_key=str(data.get("api_key") or ""),
            model=data.get("model", cls.model),
            base_url=str(data.get("base_url", cls.base_url)).rstrip("/"),
            api_key_status=status,
            last_api_key_verification=int(last_check) if last_check is not None else None,
        )


@dataclass
class AutoClassifyConfig:
    """Automatic classification triggers.

    Attributes:
        enabled: Classify new inbox notes and run the periodic timer.
        interval_minutes: Periodic bulk run interval (0 = manual only).
        settle_seconds: Wait after a file-created event before classifying.
        debounce_seconds: Ignore repeated events for the same note within this window.
    """
    enabled: bool = False
    interval_minutes: float = 0
    settle_seconds: float = 1.0
    debounce_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoClassifyConfig":
        """Create AutoClassifyConfig from dictionary."""
        if not data:
            return cls()
        interval = float(data.get("interval_minutes", cls.interval_minutes))
        if interval < 0:
            raise ConfigurationError(
                "interval_minutes must not be negative",
                config_key="auto_classify.interval_minutes",
                expected_type="non-negative number",
            )
        return cls(
            enabled=bool(data.get("enabled", cls.enabled)),
            interval_minutes=interval,
            settle_seconds=max(0.0, float(data.get("settle_seconds", cls.settle_seconds))),
            debounce_seconds=max(0.0, float(data.get("debounce_seconds", cls.debounce_seconds))),
        )


@dataclass
class ClassificationOptions:
    """Per-run classification options.

    Attributes:
        max_content_length: Characters of note body sent for a single note.
        batch_max_content_length: Characters of note body per note in a batch prompt.
        timeout_ms: Hard timeout for one model request.
        high_accuracy_mode: Always classify notes one by one.
        skip_unclassified: Keep notes without a match in place quietly.
        log_results: Log each outcome and append it to the history file.
        batch_threshold: Minimum number of notes for a combined request.
        batch_size: Maximum notes per combined request.
        chunk_size: Concurrent single-note requests per chunk.
        chunk_delay_seconds: Pause between chunks (upstream rate limit).
    """
    max_content_length: int = 1000
    batch_max_content_length: int = 300
    timeout_ms: int = 10000
    high_accuracy_mode: bool = False
    skip_unclassified: bool = True
    log_results: bool = True
    batch_threshold: int = 3
    batch_size: int = 20
    chunk_size: int = 5
    chunk_delay_seconds: float = 2.0

    def __post_init__(self):
        for name in ("max_content_length", "batch_max_content_length", "timeout_ms",
                     "batch_threshold", "batch_size", "chunk_size"):
            if getattr(self, name) < 1:
                raise ConfigurationError(
                    f"{name} must be at least 1",
                    config_key=f"classification.{name}",
                    expected_type="positive integer",
                )
        if self.chunk_delay_seconds < 0:
            raise ConfigurationError(
                "chunk_delay_seconds must not be negative",
                config_key="classification.chunk_delay_seconds",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassificationOptions":
        """Create ClassificationOptions from dictionary."""
        if not data:
            return cls()
        return cls(
            max_content_length=int(data.get("max_content_length", cls.max_content_length)),
            batch_max_content_length=int(data.get("batch_max_content_length", cls.batch_max_content_length)),
            timeout_ms=int(data.get("timeout_ms", cls.timeout_ms)),
            high_accuracy_mode=bool(data.get("high_accuracy_mode", cls.high_accuracy_mode)),
            skip_unclassified=bool(data.get("skip_unclassified", cls.skip_unclassified)),
            log_results=bool(data.get("log_results", cls.log_results)),
            batch_threshold=int(data.get("batch_threshold", cls.batch_threshold)),
            batch_size=int(data.get("batch_size", cls.batch_size)),
            chunk_size=int(data.get("chunk_size", cls.chunk_size)),
            chunk_delay_seconds=float(data.get("chunk_delay_seconds", cls.chunk_delay_seconds)),
        )


def _logging_from_dict(data: Dict[str, Any]) -> LoggingConfig:
    """Create LoggingConfig from dictionary."""
    defaults = LoggingConfig()
    if not data:
        return defaults
    log_dir = data.get("log_dir")
    return LoggingConfig(
        level=str(data.get("level", defaults.level)),
        log_dir=Path(log_dir).expanduser() if log_dir else defaults.log_dir,
        console_output=bool(data.get("console_output", defaults.console_output)),
        file_output=bool(data.get("file_output", defaults.file_output)),
        json_format=bool(data.get("json_format", defaults.json_format)),
    )


@dataclass
class Config:
    """Main configuration container.

    Aggregates all configuration sections and provides loading from YAML.
    """
    vault: VaultConfig = field(default_factory=VaultConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    auto_classify: AutoClassifyConfig = field(default_factory=AutoClassifyConfig)
    classification: ClassificationOptions = field(default_factory=ClassificationOptions)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source_path: Optional[Path] = field(default=None, compare=False, repr=False)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file.

        Args:
            config_path: Path to the configuration file. If None, looks for
                        config.yaml in the current directory.

        Returns:
            Config instance with loaded settings.

        Raises:
            yaml.YAMLError: If config file is not valid YAML.
            ConfigurationError: If a value is out of range.
        """
        if config_path is None:
            config_path = Path("config.yaml")
        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found at {config_path}, using defaults")
            config = cls()
            config.source_path = config_path
            return config

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Config file must contain a mapping at the top level",
                details={"path": str(config_path)},
            )

        logger.info(f"Loaded configuration from {config_path}")
        config = cls._from_dict(data)
        config.source_path = config_path
        return config

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            vault=VaultConfig.from_dict(data.get("vault", {})),
            gemini=GeminiConfig.from_dict(data.get("gemini", {})),
            auto_classify=AutoClassifyConfig.from_dict(data.get("auto_classify", {})),
            classification=ClassificationOptions.from_dict(data.get("classification", {})),
            logging=_logging_from_dict(data.get("logging", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain YAML-friendly data."""
        return {
            "vault": {
                "root": str(self.vault.root),
                "inbox_folder": self.vault.inbox_folder,
                "target_folders": list(self.vault.target_folders),
            },
            "gemini": {
                "api_key": self.gemini.api_key,
                "model": self.gemini.model,
                "base_url": self.gemini.base_url,
                "api_key_status": self.gemini.api_key_status,
                "last_api_key_verification": self.gemini.last_api_key_verification,
            },
            "auto_classify": {
                "enabled": self.auto_classify.enabled,
                "interval_minutes": self.auto_classify.interval_minutes,
                "settle_seconds": self.auto_classify.settle_seconds,
                "debounce_seconds": self.auto_classify.debounce_seconds,
            },
            "classification": {
                "max_content_length": self.classification.max_content_length,
                "batch_max_content_length": self.classification.batch_max_content_length,
                "timeout_ms": self.classification.timeout_ms,
                "high_accuracy_mode": self.classification.high_accuracy_mode,
                "skip_unclassified": self.classification.skip_unclassified,
                "log_results": self.classification.log_results,
                "batch_threshold": self.classification.batch_threshold,
                "batch_size": self.classification.batch_size,
                "chunk_size": self.classification.chunk_size,
                "chunk_delay_seconds": self.classification.chunk_delay_seconds,
            },
            "logging": {
                "level": self.logging.level,
                "log_dir": str(self.logging.log_dir),
                "console_output": self.logging.console_output,
                "file_output": self.logging.file_output,
                "json_format": self.logging.json_format,
            },
        }

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path where to save the configuration. Defaults to
                        the file this config was loaded from.
        """
        config_path = Path(config_path or self.source_path or "config.yaml")
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False,
                           sort_keys=False, allow_unicode=True)

        self.source_path = config_path
        logger.info(f"Saved configuration to {config_path}")
