"""
Optional YAML configuration file for mdbook-confluence.

Settings that should not live in ``book.toml`` (typically the username, or
a ``${CONFLUENCE_PASSWORD}`` reference) can go in a YAML file.  Provides
convention-based discovery, env var interpolation, and a "closest file
wins" merge.

Usage:
    from mdbook_confluence.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(book_root)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".mdbook_confluence"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files(book_root: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``MDBOOK_CONFLUENCE_CONFIG`` env var (explicit single path)
        2. ``.mdbook_confluence/config.yml`` in the book root
        3. ``.mdbook_confluence/config.yaml`` in the book root
        4. ``~/.config/mdbook_confluence/config.yml`` (XDG global)

    The book root defaults to CWD.  Only paths that exist are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("MDBOOK_CONFLUENCE_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    root = book_root or Path.cwd()
    candidates.append(root / CONFIG_DIR_NAME / "config.yml")
    candidates.append(root / CONFIG_DIR_NAME / "config.yaml")

    candidates.append(
        Path.home() / ".config" / "mdbook_confluence" / "config.yml"
    )

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3. Hierarchical merge
# ---------------------------------------------------------------------------


def load_yaml_file(path: Path) -> Any:
    """Parse one YAML file with the safe loader."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except yaml.YAMLError as err:
        raise ConfigurationError(
            f"Config file {path} is not valid YAML: {err}"
        ) from err


def load_hierarchical_config(book_root: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("closest wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files(book_root)

    if not paths:
        logger.debug("No config files found -- using book.toml only")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s) -- skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
