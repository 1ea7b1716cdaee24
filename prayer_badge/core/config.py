"""
YAML configuration for the prayer badge.

Values may reference the environment as ${NAME}, ${NAME:-fallback} or a bare
$NAME. A .env file next to the config (or in the working directory) fills in
names the environment does not already define. With watch=True the file is
observed and every registered callback receives the merged data after an edit.
"""
import copy
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from watchdog.events import FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

DEFAULT_CONFIG: Dict[str, Any] = {
    "calculation": {
        "method": "MWL",
        "madhab": "Shafi",
    },
    "countdown": {
        "period_seconds": 15,
        "urgency_threshold_minutes": 10,
    },
    "badge": {
        "urgent_color": "#dc3545",
        "normal_color": "#2c5530",
        "text_color": "#ffffff",
    },
    "notifications": {
        "enabled": False,
    },
    "messaging": {
        "timeout_seconds": 10,
    },
    "database": {
        "path": "~/.prayer_badge/records.db",
    },
    "logging": {
        "level": "INFO",
        "file": "~/.prayer_badge/prayer_badge.log",
    },
    "api": {
        "enabled": False,
        "host": "127.0.0.1",
        "port": 8765,
    },
}

ConfigCallback = Callable[[Dict[str, Any]], None]

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")
_BARE_REFERENCE = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)$")
_ENV_LINE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dicts in override are merged into base, everything else replaces."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item) for item in value]
    if not isinstance(value, str):
        return value

    bare = _BARE_REFERENCE.match(value)
    if bare:
        return os.environ.get(bare.group(1), value)

    def replace(match: "re.Match[str]") -> str:
        name, fallback = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        return fallback if fallback is not None else match.group(0)

    return _ENV_REFERENCE.sub(replace, value)


def _diff(path: str, old: Dict[str, Any], new: Dict[str, Any]) -> List[str]:
    changes = []
    for key in sorted(set(old) | set(new), key=str):
        where = f"{path}.{key}" if path else str(key)
        if key not in new:
            changes.append(f"removed {where}")
        elif key not in old:
            changes.append(f"added {where} = {new[key]!r}")
        elif isinstance(old[key], dict) and isinstance(new[key], dict):
            changes.extend(_diff(where, old[key], new[key]))
        elif old[key] != new[key]:
            changes.append(f"{where}: {old[key]!r} -> {new[key]!r}")
    return changes


class ConfigChangeHandler(FileSystemEventHandler):
    """Debounced watchdog handler reloading one config file."""

    def __init__(self, config: "Config", cooldown: float = 1.0):
        self.config = config
        self.cooldown = cooldown
        self.last_reload = 0.0

    def on_modified(self, event):
        if not isinstance(event, FileModifiedEvent):
            return
        if Path(event.src_path).resolve() != self.config.config_file:
            return
        now = time.time()
        if now - self.last_reload < self.cooldown:
            return
        self.last_reload = now
        try:
            self.config.reload()
        except Exception as e:
            logging.error(f"Error handling config change: {e}")


class Config:
    def __init__(self, config_path: Optional[str] = None, watch: bool = False):
        self.config_file = Path(config_path or "config.yaml").expanduser().resolve()
        self.config_dir = self.config_file.parent
        self.change_callbacks: List[ConfigCallback] = []
        self.observer = None
        self._reloading = False
        self.data: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        logging.debug(f"Using config file: {self.config_file}")

        self._load_env_file()
        self._ensure_config_exists()
        self._load_config()

        if watch:
            self.start_watching()

    def get(self, section: str, default: Any = None) -> Any:
        return self.data.get(section, default)

    def register_change_callback(self, callback: ConfigCallback) -> None:
        self.change_callbacks.append(callback)

    def start_watching(self) -> None:
        if self.observer is not None:
            return
        self.observer = Observer()
        self.observer.schedule(ConfigChangeHandler(self), str(self.config_dir), recursive=False)
        self.observer.start()
        logging.info(f"Watching {self.config_file} for changes")

    def cleanup(self) -> None:
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None

    def reload(self) -> None:
        """Re-read the file; callbacks run only when the merged data changed."""
        if self._reloading:
            return
        self._reloading = True
        try:
            # Editors often write in two steps
            time.sleep(0.1)
            previous = copy.deepcopy(self.data)
            self._load_config()
            changes = _diff("", previous, self.data)
            if not changes:
                logging.debug("Config file touched, content unchanged")
                return
            for change in changes:
                logging.info(f"Config {change}")
            for callback in list(self.change_callbacks):
                try:
                    callback(self.data)
                except Exception as e:
                    logging.error(f"Error in config change callback: {e}", exc_info=True)
        finally:
            self._reloading = False

    def _ensure_config_exists(self) -> None:
        if self.config_file.exists():
            return
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False))
        logging.info(f"Wrote default config to {self.config_file}")

    def _load_env_file(self) -> None:
        for candidate in (self.config_dir / ".env", Path.cwd() / ".env"):
            if candidate.is_file():
                break
        else:
            logging.debug("No .env file found")
            return

        logging.info(f"Loading environment from {candidate}")
        try:
            lines = candidate.read_text().splitlines()
        except OSError as e:
            logging.warning(f"Cannot read {candidate}: {e}")
            return
        for line in lines:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            match = _ENV_LINE.match(line)
            if not match:
                continue
            name, value = match.groups()
            # The real environment wins
            os.environ.setdefault(name, value.strip().strip('"').strip("'"))

    def _load_config(self) -> None:
        try:
            with open(self.config_file) as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError("config root must be a mapping")
        except Exception as e:
            logging.error(f"Error loading config {self.config_file}: {e}; keeping current settings")
            return

        data = _merge(DEFAULT_CONFIG, _expand(loaded))
        log_file = (data.get("logging") or {}).get("file")
        if log_file:
            data["logging"]["file"] = os.path.expanduser(log_file)
        self.data = data
        logging.debug(f"Loaded config: {self.data}")
