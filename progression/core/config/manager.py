"""
ConfigManager: YAML-backed economy tunables with dot-notation access.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable economy values
  (activity rewards, streak milestones, freeze cost, catalog limits).
- Load every YAML file under the configured directory and deep-merge them
  into one tree, so tunables can be split across files.
- Allow in-memory overrides for administrative changes and tests.

Responsibilities
----------------
- Load and merge defaults from the `config/` directory.
- Serve reads from an in-memory tree with hit/miss metrics.
- Apply runtime overrides without touching files on disk.

Design Notes
------------
- The manager is an instance passed to services through their constructor;
  there is no process-wide singleton.
- Missing keys return the caller's default, which is always the matching
  constant from `progression.modules.shared.constants`.
- Malformed files are logged and skipped unless `strict=True`.

Dependencies
------------
- PyYAML (`yaml.safe_load`).
- `progression.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Union

import yaml

from progression.core.config.errors import ConfigLoadError
from progression.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()

__all__ = ["ConfigManager", "ConfigMetrics"]


@dataclass
class ConfigMetrics:
    """Read counters for the tunables tree."""

    gets: int = 0
    hits: int = 0
    misses: int = 0
    overrides: int = 0
    reloads: int = 0
    files_loaded: int = 0
    files_failed: int = 0
    total_get_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        avg = self.total_get_time_ms / self.gets if self.gets else 0.0
        return {
            "gets": self.gets,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / self.gets * 100, 2) if self.gets else 0.0,
            "overrides": self.overrides,
            "reloads": self.reloads,
            "files_loaded": self.files_loaded,
            "files_failed": self.files_failed,
            "avg_get_time_ms": round(avg, 4),
        }


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Economy tunables backed by YAML files.

    Example
    -------
    >>> manager = ConfigManager(Path("config"))
    >>> manager.load()
    >>> manager.get("streaks.freeze_cost", 100)
    100
    """

    def __init__(
        self,
        config_dir: Optional[Union[str, Path]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
        strict: bool = False,
    ) -> None:
        self.config_dir = Path(config_dir) if config_dir is not None else None
        self.strict = strict
        self._defaults: Dict[str, Any] = copy.deepcopy(dict(defaults or {}))
        self._values: Dict[str, Any] = copy.deepcopy(self._defaults)
        self._overrides: Dict[str, Any] = {}
        self._loaded = False
        self.metrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def _load_yaml_configs(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = copy.deepcopy(self._defaults)

        if self.config_dir is None:
            return merged

        if not self.config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(self.config_dir)},
            )
            return merged

        yaml_files = sorted(
            list(self.config_dir.rglob("*.yaml")) + list(self.config_dir.rglob("*.yml"))
        )
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(self.config_dir)},
            )
            return merged

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(self.config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                self.metrics.files_failed += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                if self.strict:
                    raise ConfigLoadError(str(yaml_file), str(exc)) from exc
                continue

            if isinstance(data, dict):
                self._deep_merge_dict(merged, data)
                self.metrics.files_loaded += 1
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                self.metrics.files_failed += 1
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )
                if self.strict:
                    raise ConfigLoadError(str(yaml_file), "root object is not a mapping")

        return merged

    def load(self) -> "ConfigManager":
        """Load (or reload) all YAML files, then reapply overrides."""
        values = self._load_yaml_configs()
        for key, value in self._overrides.items():
            self._assign(values, key, value)

        self._values = values
        if self._loaded:
            self.metrics.reloads += 1
        self._loaded = True

        logger.info(
            "Economy configuration loaded",
            extra={
                "config_dir": str(self.config_dir) if self.config_dir else None,
                "yaml_file_count": self.metrics.files_loaded,
                "top_level_keys": sorted(self._values.keys()),
            },
        )
        return self

    def reload(self) -> "ConfigManager":
        self.metrics.files_loaded = 0
        self.metrics.files_failed = 0
        return self.load()

    # =========================================================================
    # READS
    # =========================================================================

    @staticmethod
    def _lookup(tree: Mapping[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return _MISSING
            value = value[part]
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"streaks.freeze_cost"`).
        default:
            Value to return if the key is not present.

        Returns
        -------
        Any
            A copy of the resolved value, or `default`.
        """
        start_time = time.perf_counter()
        self.metrics.gets += 1

        if not self._loaded:
            logger.warning(
                "ConfigManager accessed before load(); loading now",
                extra={"config_key": key},
            )
            self.load()

        try:
            value = self._lookup(self._values, key)
            if value is _MISSING or value is None:
                self.metrics.misses += 1
                return default
            self.metrics.hits += 1
            return copy.deepcopy(value) if isinstance(value, (dict, list)) else value
        finally:
            self.metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    def has(self, key: str) -> bool:
        return self._lookup(self._values, key) is not _MISSING

    def get_all_keys(self) -> List[str]:
        """Return all top-level configuration keys."""
        return sorted(self._values.keys())

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    @staticmethod
    def _assign(tree: MutableMapping[str, Any], key: str, value: Any) -> None:
        parts = key.split(".")
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        """
        Override a value in memory. Overrides survive `reload()`.

        Example
        -------
        >>> manager.set("streaks.freeze_cost", 150)
        """
        if not self._loaded:
            self.load()
        old_value = self._lookup(self._values, key)
        self._overrides[key] = copy.deepcopy(value)
        self._assign(self._values, key, value)
        self.metrics.overrides += 1

        logger.info(
            "Configuration override applied",
            extra={
                "config_key": key,
                "old_value": None if old_value is _MISSING else old_value,
                "new_value": value,
            },
        )

    def clear_overrides(self) -> None:
        self._overrides.clear()
        if self._loaded:
            self.reload()

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "loaded": self._loaded,
            "config_dir": str(self.config_dir) if self.config_dir else None,
            "top_level_keys": len(self._values),
            "override_count": len(self._overrides),
            "metrics": self.metrics.to_dict(),
        }
