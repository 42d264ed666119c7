"""
Persistent key/value data for tabby-agent.

Stores the anonymous usage id and auth tokens in a JSON file under the
user data directory.

Environment Variables:
    TABBY_AGENT_DATA_DIR: Directory to use instead of the platform default
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "data.json"


def get_data_dir() -> Path:
    """Get the directory holding the data file."""
    override = os.environ.get("TABBY_AGENT_DATA_DIR")
    if override:
        return Path(override)
    return Path(user_data_dir("tabby-agent", "tabbyml"))


class FileDataStore:
    """
    JSON-backed store.

    Attributes:
        data: In-memory contents; call save() to persist changes
        path: File location
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or get_data_dir() / DATA_FILE_NAME
        self.data: Dict[str, Any] = {}

    def load(self) -> None:
        """Load data from disk. A missing or corrupt file yields empty data."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            loaded = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable data file {self.path}: {e}")
            loaded = {}
        self.data = loaded if isinstance(loaded, dict) else {}

    def save(self) -> None:
        """Write data to disk atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved data to {self.path}")


class MemoryDataStore:
    """Non-persistent store with the same interface as FileDataStore."""

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self.data: Dict[str, Any] = dict(data or {})

    def load(self) -> None:
        pass

    def save(self) -> None:
        pass
