"""Configuration loading for FLOWGATE.

Values cascade, highest priority first:

    1. Environment variables
    2. Local config (.flowgate, nearest one up to the repository root)
    3. Global config (~/.flowgate-config)
    4. Built-in defaults

A project keeps its epic order and breakpoints in its local file while
executor preferences live in the global one. Both files hold one
``KEY="VALUE"`` pair per line; ``#`` starts a comment line.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

from rich.table import Table

from flowgate.config.settings import CONFIG_FILE, Settings
from flowgate.utils.console import console, print_header, print_warning
from flowgate.utils.files import atomic_write_text
from flowgate.utils.logging import log_message

_KEY = r"[a-zA-Z_][a-zA-Z0-9_]*"
_LINE_PATTERN = re.compile(rf"^({_KEY})=(.*)$")
_KEY_PATTERN = re.compile(rf"^{_KEY}$")

Scope = Literal["global", "local"]


def find_repo_root(start: Path | None = None) -> Path | None:
    """Walk up from ``start`` (default: CWD) to the directory holding .git."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / ".git").exists():
            return directory
    return None


def find_local_config(start: Path | None = None, name: str = ".flowgate") -> Path | None:
    """Nearest ``name`` file from ``start`` upward, not looking past the repo root."""
    current = start or Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / name
        if candidate.is_file():
            return candidate
        if (directory / ".git").exists():
            return None
    return None


def _unquote(raw: str) -> str:
    # Double quotes support \" and \\ escapes; single quotes are literal.
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        return raw[1:-1].replace("\\\\", "\\").replace('\\"', '"')
    if len(raw) >= 2 and raw[0] == raw[-1] == "'":
        return raw[1:-1]
    return raw


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_config_text(text: str) -> dict[str, str]:
    """Parse config file text into raw string values.

    Blank lines, comments and lines that are not ``KEY=VALUE`` pairs are
    skipped. A key given twice keeps its last value.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _LINE_PATTERN.match(line)
        if match:
            values[match.group(1)] = _unquote(match.group(2))
    return values


def upsert_config_line(text: str, key: str, value: str) -> list[str]:
    """Return the lines of ``text`` with ``key`` set to ``value``.

    Replaces the existing line for ``key`` in place, or appends one.
    Comments and unrelated lines are kept as they are.
    """
    new_line = f"{key}={_quote(value)}"
    lines: list[str] = []
    replaced = False
    for line in text.splitlines():
        match = _LINE_PATTERN.match(line.strip())
        if match and match.group(1) == key:
            if not replaced:
                lines.append(new_line)
                replaced = True
            continue
        lines.append(line)
    if not replaced:
        lines.append(new_line)
    return lines


class ConfigManager:
    """Loads settings from the config cascade and records where each came from.

    Attributes:
        settings: Settings from the last ``load``
        global_config_path: Path of the global config file
        local_config_path: Local config file found by the last ``load``, if any
    """

    LOCAL_CONFIG_NAME = ".flowgate"

    def __init__(self, global_config_path: Path | None = None) -> None:
        self.global_config_path = global_config_path or CONFIG_FILE
        self.local_config_path: Path | None = None
        self.settings = Settings()
        self._raw_values: dict[str, str] = {}
        self._config_sources: dict[str, str] = {}

    def load(self) -> Settings:
        """Rebuild settings from defaults and every config source."""
        self.settings = Settings()
        self._raw_values = {}
        self._config_sources = {}

        if self.global_config_path.is_file():
            log_message(f"Loading global configuration from {self.global_config_path}")
            self._merge(parse_config_text(self.global_config_path.read_text()), "global")

        self.local_config_path = find_local_config(name=self.LOCAL_CONFIG_NAME)
        if self.local_config_path:
            log_message(f"Loading local configuration from {self.local_config_path}")
            self._merge(
                parse_config_text(self.local_config_path.read_text()),
                f"local ({self.local_config_path})",
            )

        env_values = {
            key: os.environ[key] for key in Settings.get_config_keys() if key in os.environ
        }
        self._merge(env_values, "environment")

        for key, value in self._raw_values.items():
            self._apply(key, value)

        log_message(f"Configuration loaded ({len(self._raw_values)} keys)")
        return self.settings

    def _merge(self, values: dict[str, str], source: str) -> None:
        self._raw_values.update(values)
        self._config_sources.update(dict.fromkeys(values, source))

    def _apply(self, key: str, value: str) -> None:
        """Set the settings attribute for ``key``, cast to its default's type."""
        attr = self.settings.get_attribute_for_key(key)
        if attr is None:
            return

        default = getattr(self.settings, attr)
        if isinstance(default, bool):
            setattr(self.settings, attr, value.strip().lower() in ("true", "1", "yes"))
        elif isinstance(default, int):
            try:
                setattr(self.settings, attr, int(value))
            except ValueError:
                print_warning(f"Ignoring non-integer {key}={value!r} ({self.get_source(key)})")
        else:
            setattr(self.settings, attr, value)

    def save(self, key: str, value: str, scope: Scope = "global") -> None:
        """Write one value to the global or local file, then reload.

        A local save with no local file yet creates ``.flowgate`` at the
        repository root, or in the CWD outside a repository. The file is
        replaced atomically and left readable by the owner only.

        Raises:
            ValueError: If the key name or the scope is invalid
        """
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid config key: {key}")
        if scope not in ("global", "local"):
            raise ValueError(f"Invalid scope: {scope}. Must be 'global' or 'local'")

        if scope == "global":
            target = self.global_config_path
        else:
            root = find_repo_root() or Path.cwd()
            target = self.local_config_path or root / self.LOCAL_CONFIG_NAME

        existing = target.read_text() if target.exists() else ""
        lines = upsert_config_line(existing, key, value)
        atomic_write_text(target, "\n".join(lines) + "\n", mode=0o600)
        log_message(f"Configuration saved to {scope}: {key}")

        self.load()

    def get(self, key: str, default: str = "") -> str:
        """Raw value of ``key`` after the cascade."""
        return self._raw_values.get(key, default)

    def get_source(self, key: str) -> str:
        return self._config_sources.get(key, "default")

    def show(self) -> None:
        """Print the effective configuration with the source of each value."""
        print_header("FLOWGATE Configuration")
        table = Table(show_header=True, header_style="bold")
        table.add_column("Key")
        table.add_column("Value")
        table.add_column("Source", style="dim")
        for key in Settings.get_config_keys():
            attr = self.settings.get_attribute_for_key(key)
            value = getattr(self.settings, attr) if attr else ""
            table.add_row(key, str(value), self.get_source(key))
        console.print(table)
        if self.local_config_path:
            console.print(f"Local config: {self.local_config_path}")
        console.print(f"Global config: {self.global_config_path}")


__all__ = [
    "ConfigManager",
    "find_local_config",
    "find_repo_root",
    "parse_config_text",
    "upsert_config_line",
]
