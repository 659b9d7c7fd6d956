"""Configuration: platformdirs locations, config.toml, and SKILLFLOW_* overrides."""

import logging
import os
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import platformdirs

from .skills.loader import default_roots
from .skills.workflows import DEFAULT_WAIT_PHRASES

logger = logging.getLogger(__name__)

APP_NAME = "skillflow"
CONFIG_FILENAME = "config.toml"


def _expand(value: str) -> Path:
	return Path(os.path.expanduser(value))


def _parse_bool(value: Any) -> bool:
	if isinstance(value, bool):
		return value
	return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
	"""Where skills live and how the registry and executor behave."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	config_file: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Skill discovery and execution
	skills_paths: list[Path] = field(default_factory=default_roots)
	log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
	strict: bool = False
	wait_phrases: list[str] = field(default_factory=lambda: list(DEFAULT_WAIT_PHRASES))

	def __post_init__(self) -> None:
		self.config_file = self.config_dir / CONFIG_FILENAME
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create the config, data and log directories."""
		for path in (self.config_dir, self.data_dir, self.log_dir):
			path.mkdir(parents=True, exist_ok=True)


# config.toml key -> converter for its value
TOML_FIELDS: dict[str, Callable[[Any], Any]] = {
	"config_dir": _expand,
	"data_dir": _expand,
	"skills_paths": lambda val: [_expand(p) for p in val],
	"log_level": lambda val: str(val).upper(),
	"strict": _parse_bool,
	"wait_phrases": lambda val: [str(p) for p in val],
}


def _apply_env_overrides(config: Config) -> Config:
	"""Apply SKILLFLOW_* environment variable overrides."""
	for env_key, attr in (("SKILLFLOW_CONFIG_DIR", "config_dir"), ("SKILLFLOW_DATA_DIR", "data_dir")):
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	skills_path = os.getenv("SKILLFLOW_SKILLS_PATH")
	if skills_path:
		extra = [Path(p).expanduser() for p in skills_path.split(os.pathsep) if p]
		config.skills_paths = list(config.skills_paths) + [p for p in extra if p not in config.skills_paths]

	log_level = os.getenv("SKILLFLOW_LOG_LEVEL")
	if log_level:
		config.log_level = log_level.upper()

	strict = os.getenv("SKILLFLOW_STRICT")
	if strict:
		config.strict = _parse_bool(strict)

	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml from the config dir, if present. Unknown keys are ignored."""
	toml_path = config.config_dir / CONFIG_FILENAME
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	for key, val in data.items():
		convert = TOML_FIELDS.get(key)
		if convert is None:
			logger.debug(f"Ignoring unknown config key: {key}")
			continue
		setattr(config, key, convert(val))

	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	env_config_dir = os.getenv("SKILLFLOW_CONFIG_DIR")
	if env_config_dir:
		config.config_dir = Path(env_config_dir)
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
