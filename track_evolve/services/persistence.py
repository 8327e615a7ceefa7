"""
track_evolve/services/persistence.py

File persistence for trained policies.

Policies are stored as ``{shapes, values}`` records in a single JSON
file, keyed by name, so a good brain survives restarts and can seed a
later run.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from track_evolve.core.brain import PolicyParameters
from track_evolve.errors import ShapeMismatch

logger = logging.getLogger(__name__)

DEFAULT_POLICY_KEY = "best"


@dataclass
class PersistenceConfig:
    """Configuration for policy persistence."""

    path: str = "track_evolve_policies.json"
    enabled: bool = True
    indent: int | None = 2  # None = compact

    @classmethod
    def from_env(cls) -> PersistenceConfig:
        """Create config from environment variables."""
        return cls(
            path=os.environ.get("TRACK_EVOLVE_POLICY_PATH", "track_evolve_policies.json"),
            enabled=os.environ.get("TRACK_EVOLVE_PERSISTENCE_ENABLED", "true").lower()
            == "true",
        )


class PolicyStore:
    """
    Keyed policy records in one JSON file.

    Never raises on I/O or decode problems: failures are logged and
    reported as ``False`` / ``None``. Whether a loaded record fits the
    network is the engine's call, not the store's.
    """

    def __init__(self, config: PersistenceConfig | None = None):
        self.config = config or PersistenceConfig()

    @property
    def path(self) -> Path:
        return Path(self.config.path)

    def _read_all(self) -> dict[str, Any] | None:
        """Whole file as a dict; {} if missing, None if unreadable."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read policy file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Policy file {self.path} does not contain a JSON object")
            return None
        return data

    def save(self, parameters: PolicyParameters, key: str = DEFAULT_POLICY_KEY) -> bool:
        """
        Store ``parameters`` under ``key``, keeping other keys.

        Returns True on success.
        """
        if not self.config.enabled:
            return False

        records = self._read_all()
        if records is None:
            # Do not clobber a file we could not parse
            return False

        records[key] = parameters.to_dict()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(records, f, indent=self.config.indent)
        except OSError as e:
            logger.error(f"Failed to save policy '{key}' to {self.path}: {e}")
            return False

        logger.info(
            f"Policy '{key}' saved to {self.path} ({parameters.parameter_count} parameters)"
        )
        return True

    def load(self, key: str = DEFAULT_POLICY_KEY) -> PolicyParameters | None:
        """Record stored under ``key``, or None if absent or malformed."""
        if not self.config.enabled:
            return None

        records = self._read_all()
        if records is None:
            return None

        raw = records.get(key)
        if raw is None:
            logger.warning(f"No saved policy '{key}' in {self.path}")
            return None

        try:
            parameters = PolicyParameters.from_dict(raw)
        except (ShapeMismatch, TypeError, ValueError) as e:
            logger.error(f"Saved policy '{key}' is malformed: {e}")
            return None

        logger.info(f"Policy '{key}' loaded from {self.path}")
        return parameters

    def exists(self, key: str = DEFAULT_POLICY_KEY) -> bool:
        records = self._read_all()
        return bool(records) and key in records

    def keys(self) -> list[str]:
        return sorted(self._read_all() or {})

    def clear(self, key: str | None = None) -> bool:
        """
        Remove one key, or the whole file when ``key`` is None.

        Returns True if something was removed.
        """
        if key is None:
            if not self.path.exists():
                return False
            try:
                self.path.unlink()
            except OSError as e:
                logger.error(f"Failed to delete policy file {self.path}: {e}")
                return False
            logger.info(f"Policy file {self.path} deleted")
            return True

        records = self._read_all()
        if not records or key not in records:
            return False

        del records[key]
        try:
            with open(self.path, "w") as f:
                json.dump(records, f, indent=self.config.indent)
        except OSError as e:
            logger.error(f"Failed to remove policy '{key}' from {self.path}: {e}")
            return False
        return True
