"""Pensive configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (PENSIVE_STORE_PATH, PENSIVE_STORE_KEY)
  3. Per-project pensive.yaml  (in the working directory)
  4. Global ~/.pensive/config.yaml  (defaults only, no credentials)
  5. Hardcoded defaults

Global config must never contain credentials; a hosted persistence location
takes them from environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from pensive.ingest.urls import TRACKING_PARAMS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".pensive"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "pensive.yaml"

# Key names that look like credentials. Legitimate keys such as
# max_cooccurrence_concepts or tracking_params do not match.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_STORE_KEY_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_KNOWN_SECTIONS: frozenset[str] = frozenset(["store", "graph", "trending", "ingest"])

_TIMEFRAMES: tuple[str, ...] = ("weekly", "monthly", "quarterly")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StoreCfg:
    """Where the store blob lives (pensive.yaml: store:)."""

    path: str = ".pensive"
    key: str = "pensive-database"


@dataclass
class GraphCfg:
    """Concept graph weights and defaults (pensive.yaml: graph:).

    Attributes:
        abstraction_level: Default level for ``pensive graph`` (0..100).
        cooccurrence_strength: Initial weight of a CO_OCCURS edge.
        explicit_strength: Initial weight of a producer-supplied edge.
        strength_increment: Added each time an existing edge recurs.
        max_cooccurrence_concepts: Concepts per document paired for co-occurrence.
    """

    abstraction_level: int = 30
    cooccurrence_strength: float = 0.5
    explicit_strength: float = 0.8
    strength_increment: float = 0.1
    max_cooccurrence_concepts: int = 25


@dataclass
class TrendingCfg:
    """Defaults for ``pensive trending`` (pensive.yaml: trending:)."""

    timeframe: str = "weekly"
    limit: int = 10


@dataclass
class IngestCfg:
    """URL normalisation settings (pensive.yaml: ingest:)."""

    tracking_params: list[str] = field(default_factory=lambda: list(TRACKING_PARAMS))


@dataclass
class PensiveConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    store: StoreCfg = field(default_factory=StoreCfg)
    graph: GraphCfg = field(default_factory=GraphCfg)
    trending: TrendingCfg = field(default_factory=TrendingCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def _check_range(name: str, value: float, low: float, high: float | None = None) -> None:
    if value < low or (high is not None and value > high):
        bound = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise ConfigError(f"{name} must be {bound}, got {value!r}")


def _validate(cfg: PensiveConfig) -> None:
    """Raise ConfigError for out-of-range values."""
    if not _STORE_KEY_RE.match(cfg.store.key):
        raise ConfigError(
            f"store.key '{cfg.store.key}' is not a valid storage key.\n"
            "  Use letters, digits, '.', '_' or '-' (e.g. pensive-database)."
        )
    _check_range("graph.abstraction_level", cfg.graph.abstraction_level, 0, 100)
    _check_range("graph.cooccurrence_strength", cfg.graph.cooccurrence_strength, 0.0, 1.0)
    _check_range("graph.explicit_strength", cfg.graph.explicit_strength, 0.0, 1.0)
    _check_range("graph.strength_increment", cfg.graph.strength_increment, 0.0, 1.0)
    _check_range("graph.max_cooccurrence_concepts", cfg.graph.max_cooccurrence_concepts, 1)
    _check_range("trending.limit", cfg.trending.limit, 1)
    if cfg.trending.timeframe not in _TIMEFRAMES:
        raise ConfigError(
            f"trending.timeframe must be one of {', '.join(_TIMEFRAMES)}, "
            f"got '{cfg.trending.timeframe}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def _cfg_from_dict(data: dict[str, Any]) -> PensiveConfig:
    """Build a *PensiveConfig* from a merged raw YAML dict."""
    cfg = PensiveConfig()

    try:
        if "store" in data:
            s = _section(data, "store")
            cfg.store = StoreCfg(
                path=str(s.get("path", cfg.store.path)),
                key=str(s.get("key", cfg.store.key)),
            )

        if "graph" in data:
            g = _section(data, "graph")
            cfg.graph = GraphCfg(
                abstraction_level=int(g.get("abstraction_level", cfg.graph.abstraction_level)),
                cooccurrence_strength=float(
                    g.get("cooccurrence_strength", cfg.graph.cooccurrence_strength)
                ),
                explicit_strength=float(g.get("explicit_strength", cfg.graph.explicit_strength)),
                strength_increment=float(
                    g.get("strength_increment", cfg.graph.strength_increment)
                ),
                max_cooccurrence_concepts=int(
                    g.get("max_cooccurrence_concepts", cfg.graph.max_cooccurrence_concepts)
                ),
            )

        if "trending" in data:
            t = _section(data, "trending")
            cfg.trending = TrendingCfg(
                timeframe=str(t.get("timeframe", cfg.trending.timeframe)).lower(),
                limit=int(t.get("limit", cfg.trending.limit)),
            )

        if "ingest" in data:
            i = _section(data, "ingest")
            params = i.get("tracking_params", cfg.ingest.tracking_params)
            if not isinstance(params, list):
                raise ConfigError("ingest.tracking_params must be a list")
            cfg.ingest = IngestCfg(tracking_params=[str(p) for p in params])
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: PensiveConfig) -> PensiveConfig:
    """Apply PENSIVE_* environment variable overrides."""
    if path := os.environ.get("PENSIVE_STORE_PATH"):
        cfg.store.path = path
    if key := os.environ.get("PENSIVE_STORE_KEY"):
        cfg.store.key = key
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> PensiveConfig:
    """Load and return a merged *PensiveConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *pensive.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *PensiveConfig*.

    Raises:
        ConfigError: If global config contains credential-like fields, or if
            any value is malformed or out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.pensive/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Pensive global configuration: defaults only.\n"
            "# NEVER store credentials here; use environment variables.\n"
            "\n"
            "graph:\n"
            "  abstraction_level: 30\n"
            "\n"
            "trending:\n"
            "  timeframe: weekly\n"
            "  limit: 10\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
