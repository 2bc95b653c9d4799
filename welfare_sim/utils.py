"""
Utility helpers used across the simulation package.
Keep this file *boring* and dependency-light.
"""
from __future__ import annotations

import os
import json
import hashlib
from typing import Any, Dict


def sha1_of_dict(d: Dict[str, Any]) -> str:
    """
    Deterministically hash a dictionary (sorted keys) to capture config identity.
    Used to tag run metadata.
    """
    s = json.dumps(d, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha1(s).hexdigest()


def ensure_dir(path: str) -> None:
    """Create a directory if it does not exist (no error if it already exists)."""
    os.makedirs(path, exist_ok=True)
