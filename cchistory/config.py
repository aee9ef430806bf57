"""
Configuration management for cchistory.

Settings come from, lowest priority first: dataclass defaults, a JSON
config file, then environment variables (a project ``.env`` is loaded
into the environment first).
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

CONFIG_PATH = Path.home() / ".cchistory" / "config.json"

ENV_OVERRIDES = {
    "CCHISTORY_CLEARTOOL": "cleartool",
    "CCHISTORY_PROMPT": "prompt",
    "CCHISTORY_ROOT": "clearcase_root",
    "CCHISTORY_CUTOFF": "cutoff",
    "CCHISTORY_ENCODING": "encoding",
}


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class ProgressConfig:
    """How often progress is logged while reading."""

    files: int = 100
    directories: int = 20
    versions: int = 100


@dataclass
class ImporterConfig:
    """Complete importer configuration."""

    cleartool: str = "cleartool"
    prompt: str = "cleartool> "
    clearcase_root: str | None = None
    cutoff: str | None = None  # ISO 8601; empty means "now"
    startup_timeout: float | None = None
    encoding: str = "utf-8"  # console code page of the tool, e.g. cp1252
    progress: ProgressConfig = field(default_factory=ProgressConfig)

    @property
    def cutoff_date(self) -> datetime | None:
        """
        Parsed cutoff.

        Raises:
            ValueError: If the cutoff is not an ISO 8601 date
        """
        return datetime.fromisoformat(self.cutoff) if self.cutoff else None

    @property
    def command(self) -> list[str]:
        return self.cleartool.split()

    @classmethod
    def load(cls, path: Path | None = None, env_file: Path | None = None) -> "ImporterConfig":
        """
        Load configuration from file and environment.

        Args:
            path: Config file. Defaults to ~/.cchistory/config.json
            env_file: .env file to load. Defaults to a .env in the working directory
        """
        if path is None:
            path = CONFIG_PATH

        data: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                data = json.load(f)

        load_dotenv(env_file or Path.cwd() / ".env")
        for variable, key in ENV_OVERRIDES.items():
            value = os.getenv(variable)
            if value:
                data[key] = value

        progress = ProgressConfig(**_filter_dataclass_fields(data.pop("progress", {}), ProgressConfig))
        return cls(progress=progress, **_filter_dataclass_fields(data, cls))

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


# Default configuration instance
default_config = ImporterConfig()
