"""
Outline settings.

Defaults match the behaviour of the outline window; a JSON file can
override any of them:

    {"edit_debounce_ms": 2000, "supported_extensions": [".cpp", ".h"]}
"""

import json
import logging
import os
from typing import List, Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = [
    ".c", ".cc", ".cpp", ".cxx",
    ".h", ".hh", ".hpp", ".hxx",
    ".inl", ".ipp", ".tpp",
]


class OutlineSettings(BaseModel):
    edit_debounce_ms: int = 5000
    filter_debounce_ms: int = 300
    follow_cursor_interval_ms: int = 100
    supported_extensions: List[str] = list(DEFAULT_EXTENSIONS)
    c_extensions: List[str] = [".c"]

    def is_supported(self, file_path: str) -> bool:
        ext = os.path.splitext(file_path)[1].lower()
        return ext in {e.lower() for e in self.supported_extensions}


def load_settings(path: Optional[str] = None) -> OutlineSettings:
    """Load settings from a JSON file, falling back to defaults on any error."""
    if not path:
        return OutlineSettings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Settings file not found: %s, using defaults", path)
        return OutlineSettings()
    except OSError as e:
        logger.error("Cannot read settings file %s: %s", path, e)
        return OutlineSettings()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error("Invalid settings file %s: %s", path, e)
        return OutlineSettings()

    if not isinstance(data, dict):
        logger.error("Settings file %s must contain a JSON object", path)
        return OutlineSettings()

    try:
        settings = OutlineSettings(**data)
    except ValidationError as e:
        logger.error("Invalid settings in %s: %s", path, e)
        return OutlineSettings()

    logger.info("Loaded outline settings from %s", path)
    return settings
