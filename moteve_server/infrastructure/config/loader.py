"""
Configuration loading and saving utilities.

Configuration comes from an optional YAML or JSON file, overridden by
``MOTEVE_*`` environment variables. Without an explicit path the file
named by ``MOTEVE_CONFIG`` is used, if set.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml

from .models import ApplicationConfig

FILE_FORMATS = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on', 'enabled')


# (variable suffix, dotted config path, converter)
ENV_OVERRIDES: List[Tuple[str, str, Callable[[str], Any]]] = [
    ("DEBUG", "debug", parse_bool),
    ("ENVIRONMENT", "environment", str),
    ("HOST", "server.host", str),
    ("PORT", "server.port", int),
    ("STORAGE_BACKEND", "upload.storage_backend", str),
    ("STORAGE_DIR", "upload.storage_directory", str),
    ("OUTPUT_DIR", "upload.output_directory", str),
    ("MAX_PART_SIZE", "upload.max_part_size", int),
    ("IDLE_TIMEOUT", "upload.idle_timeout", float),
    ("KEEP_PARTS", "upload.keep_parts", parse_bool),
    ("LOG_LEVEL", "logging.level", str),
    ("LOG_DIR", "logging.log_directory", str),
]


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, descending into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Reads and writes ``ApplicationConfig`` files."""

    def __init__(self, env_prefix: str = "MOTEVE_",
                 environ: Optional[Mapping[str, str]] = None) -> None:
        self._env_prefix = env_prefix
        self._environ = environ if environ is not None else os.environ

    def load_config(self, config_file: Optional[str] = None) -> ApplicationConfig:
        """
        Load configuration from file and environment variables.

        Raises:
            FileNotFoundError: If the configuration file does not exist
            ValueError: If the file or an override cannot be parsed, or the
                result fails validation
        """
        if config_file is None:
            config_file = self._environ.get(f"{self._env_prefix}CONFIG") or None

        data = self.read_file(config_file) if config_file else {}
        data = deep_merge(data, self.environment_overrides())

        config = ApplicationConfig.from_dict(data)
        config.config_file_path = config_file
        return config

    def read_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        kind = FILE_FORMATS.get(path.suffix.lower())
        if kind is None:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        text = path.read_text(encoding='utf-8')
        try:
            data = yaml.safe_load(text) if kind == "yaml" else json.loads(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{file_path} must contain a mapping at the top level")
        return data

    def save_config(self, config: ApplicationConfig, file_path: str, format: str = "yaml") -> None:
        """Write ``config`` as YAML or JSON, leaving out runtime-only fields."""
        kind = format.lower()
        if kind not in ("yaml", "json"):
            raise ValueError(f"Unsupported format: {format}")

        data = config.to_dict()
        data.pop('config_file_path', None)

        if kind == "yaml":
            text = yaml.safe_dump(data, default_flow_style=False, indent=2, sort_keys=False)
        else:
            text = json.dumps(data, indent=2) + "\n"

        try:
            Path(file_path).write_text(text, encoding='utf-8')
        except OSError as e:
            raise ValueError(f"Error writing configuration to {file_path}: {e}")

    def environment_overrides(self) -> Dict[str, Any]:
        """Nested overrides built from the prefixed environment variables."""
        overrides: Dict[str, Any] = {}

        for suffix, dotted_path, converter in ENV_OVERRIDES:
            name = f"{self._env_prefix}{suffix}"
            raw = self._environ.get(name)
            if raw is None:
                continue

            try:
                value = converter(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {name}: {raw} ({e})")

            *parents, leaf = dotted_path.split('.')
            section = overrides
            for key in parents:
                section = section.setdefault(key, {})
            section[leaf] = value

        return overrides
