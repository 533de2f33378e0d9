"""Application settings: defaults, optional YAML file, environment overrides."""
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from quiz_master.errors import ValidationError

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / ".quiz_master"
DEFAULT_DB_PATH = str(APP_DIR / "quiz_master.db")
DEFAULT_CONFIG_PATH = APP_DIR / "config.yaml"

BATCH_SIZE = 20
AUTO_ADVANCE_DELAY = 2.5
MIN_TEXT_LENGTH = 50
DEFAULT_MODELS = ["gemini-2.5-flash", "gemini-2.0-flash"]

ENV_OVERRIDES = {
    "QUIZ_MASTER_DB": "db_path",
    "QUIZ_MASTER_BATCH_SIZE": "batch_size",
    "QUIZ_MASTER_LANGUAGE": "language",
    "GEMINI_API_KEY": "gemini_api_key",
    "QUIZ_MASTER_MODELS": "gemini_models",
}


@dataclass
class AppConfig:
    db_path: str = DEFAULT_DB_PATH
    batch_size: int = BATCH_SIZE
    auto_advance_delay: float = AUTO_ADVANCE_DELAY
    min_text_length: int = MIN_TEXT_LENGTH
    language: str = "en"
    gemini_api_key: str = ""
    gemini_models: list = field(default_factory=lambda: list(DEFAULT_MODELS))

    def __post_init__(self):
        try:
            self.batch_size = int(self.batch_size)
            self.auto_advance_delay = float(self.auto_advance_delay)
            self.min_text_length = int(self.min_text_length)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid configuration value: {e}") from e
        if isinstance(self.gemini_models, str):
            self.gemini_models = [m.strip() for m in self.gemini_models.split(",") if m.strip()]
        if self.batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        if self.auto_advance_delay < 0:
            raise ValidationError("auto_advance_delay must not be negative")
        if self.language not in ("en", "zh"):
            raise ValidationError(f"Unsupported language: {self.language!r}")


def load_config(path: str | Path | None = None, environ: dict | None = None) -> AppConfig:
    """Build an AppConfig from the YAML file (if any) and the environment."""
    environ = os.environ if environ is None else environ
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    values = {}
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValidationError(f"{config_path} must contain a mapping")
        known = {f.name for f in fields(AppConfig)}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning("Ignoring unknown config key %r in %s", key, config_path)
    for env_name, attr in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[attr] = environ[env_name]
    return AppConfig(**values)
