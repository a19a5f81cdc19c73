"""Configuration management for Folder Mirror.

Reads the list of watch definitions (and a few logging settings) from a
JSON config file in the platform-appropriate application data directory.
On first run an example file is written instead.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from folder_mirror.platform_utils import (
    example_root,
)
from folder_mirror.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from folder_mirror.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1

DEFAULT_SETTINGS: dict[str, Any] = {
    "log_level": "INFO",
    # ---- log rotation ----
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
}


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or understood."""


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


def normalize_extensions(values: list[str] | None) -> frozenset[str]:
    """Lower-case *values* and give each a leading dot; blanks are dropped."""
    result = set()
    for ext in values or []:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        result.add(ext)
    return frozenset(result)


@dataclass(frozen=True)
class WatchDefinition:
    """One configured mirroring rule: *source_root* is copied into *destination_root*."""

    source_root: Path
    destination_root: Path
    extensions: frozenset[str] = field(default_factory=frozenset)
    remove_before_copy: bool = False
    settle_delay_seconds: int = DEFAULT_DELAY_SECONDS

    @classmethod
    def from_dict(cls, data: Any) -> "WatchDefinition":
        """Build a definition from one record of the config file."""
        if not isinstance(data, dict):
            raise ConfigError(f"Watch entry must be an object, got {type(data).__name__}")

        source = data.get("source_path")
        destination = data.get("destination_path")
        if not isinstance(source, str) or not isinstance(destination, str):
            raise ConfigError(
                "Watch entry needs string 'source_path' and 'destination_path'"
            )

        extensions = data.get("file_extensions") or []
        if not isinstance(extensions, list) or not all(
            isinstance(ext, str) for ext in extensions
        ):
            raise ConfigError(f"'file_extensions' must be a list of strings ({source})")

        remove = data.get("remove_before_copy", False)
        if not isinstance(remove, bool):
            raise ConfigError(f"'remove_before_copy' must be true or false ({source})")

        delay = data.get("delay_in_seconds", DEFAULT_DELAY_SECONDS)
        if isinstance(delay, bool) or not isinstance(delay, int):
            raise ConfigError(f"'delay_in_seconds' must be an integer ({source})")

        return cls(
            source_root=Path(source),
            destination_root=Path(destination),
            extensions=normalize_extensions(extensions),
            remove_before_copy=remove,
            settle_delay_seconds=max(0, delay),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the config-file representation of this definition."""
        data: dict[str, Any] = {
            "source_path": str(self.source_root),
            "destination_path": str(self.destination_root),
        }
        if self.extensions:
            data["file_extensions"] = sorted(self.extensions)
        data["remove_before_copy"] = self.remove_before_copy
        data["delay_in_seconds"] = self.settle_delay_seconds
        return data

    # ---- path helpers ----

    def accepts(self, path: Path) -> bool:
        """Return True when *path* passes the extension filter."""
        if not self.extensions:
            return True
        return path.suffix.lower() in self.extensions

    def relative_path(self, path: Path) -> Path:
        """Return *path* relative to the source root."""
        try:
            return path.relative_to(self.source_root)
        except ValueError:
            return Path(path.name)

    def destination_for(self, path: Path) -> Path:
        """Re-root *path* from the source tree into the destination tree."""
        return self.destination_root / self.relative_path(path)

    def missing_roots(self) -> list[Path]:
        """Return the roots that are not existing directories."""
        return [
            root
            for root in (self.source_root, self.destination_root)
            if not root.is_dir()
        ]


def default_definitions() -> list[WatchDefinition]:
    """Return the two example definitions written on first run."""
    return [
        WatchDefinition(
            source_root=Path(example_root("Source", 1)),
            destination_root=Path(example_root("Dest", 1)),
            extensions=frozenset({".txt", ".log"}),
        ),
        WatchDefinition(
            source_root=Path(example_root("Source", 2)),
            destination_root=Path(example_root("Dest", 2)),
        ),
    ]


class Config:
    """Watch definitions and logging settings backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Remember *path*, falling back to the platform default; nothing is read yet."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self._definitions: list[WatchDefinition] = []

    @property
    def path(self) -> Path:
        """Return the location of the config file."""
        return self._path

    def exists(self) -> bool:
        """Return True when a config file is present on disk."""
        return self._path.exists()

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys.

        Raises ConfigError if the file cannot be read or is malformed.
        """
        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"Could not read config {self._path}: {exc}") from exc

        if isinstance(stored, list):
            entries, settings = stored, {}
        elif isinstance(stored, dict):
            entries = stored.get("watches", [])
            settings = {k: v for k, v in stored.items() if k != "watches"}
            if not isinstance(entries, list):
                raise ConfigError("'watches' must be a list of watch entries")
        else:
            raise ConfigError(
                f"Config must be a list or an object, got {type(stored).__name__}"
            )

        # Merge stored values over defaults so new keys get defaults
        self._data = {**DEFAULT_SETTINGS, **settings}
        for key in ("max_log_size_mb", "log_backup_count"):
            try:
                int(self._data[key])
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"'{key}' must be an integer") from exc
        self._definitions = [WatchDefinition.from_dict(entry) for entry in entries]
        logger.info(
            "Configuration loaded from %s (%d watch entries)",
            self._path,
            len(self._definitions),
        )

    def write_default(self) -> None:
        """Write the example configuration to disk."""
        self._data = dict(DEFAULT_SETTINGS)
        self._definitions = default_definitions()
        self.save()

    def save(self) -> None:
        """Persist the current configuration to disk.

        Raises ConfigError if the file cannot be written.
        """
        document = {
            "watches": [d.to_dict() for d in self._definitions],
            **self._data,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            logger.info("Configuration saved to %s", self._path)
        except OSError as exc:
            raise ConfigError(f"Failed to save configuration: {exc}") from exc

    # ---- accessors ----

    @property
    def definitions(self) -> list[WatchDefinition]:
        """Return the configured watch definitions, in file order."""
        return list(self._definitions)

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return str(self._data.get("log_level", "INFO"))

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return max(1, int(self._data.get("max_log_size_mb", 10)))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return max(0, int(self._data.get("log_backup_count", 3)))
