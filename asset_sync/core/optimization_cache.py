"""Ledger of files already brought to their optimized state.

Lossy re-encodes can keep shrinking a JPEG a little on every pass, so the
size ratchet alone does not make repeated runs no-ops. The ledger records the
SHA-256 of each file as the optimizer last left it, together with the settings
fingerprint; a file that still matches is not re-encoded.
"""

import json
import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)

LEDGER_NAME = "optimized.json"


class OptimizationCache:
    def __init__(self, cache_dir: str, fingerprint: str):
        self.path = os.path.join(cache_dir, LEDGER_NAME)
        self.fingerprint = fingerprint
        self.entries: Dict[str, Dict[str, str]] = {}
        self._dirty = False

    @classmethod
    def load(cls, cache_dir: str, fingerprint: str) -> "OptimizationCache":
        cache = cls(cache_dir, fingerprint)
        try:
            with open(cache.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return cache
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache %s: %s", cache.path, e)
            return cache
        if isinstance(data, dict):
            cache.entries = {
                k: v for k, v in data.items() if isinstance(v, dict)
            }
        return cache

    def is_current(self, rel_path: str, digest: str) -> bool:
        entry = self.entries.get(rel_path)
        if not entry or entry.get("settings") != self.fingerprint:
            return False
        return entry.get("sha256") == digest

    def record(self, rel_path: str, digest: str):
        if self.is_current(rel_path, digest):
            return
        self.entries[rel_path] = {
            "sha256": digest,
            "settings": self.fingerprint,
        }
        self._dirty = True

    def save(self):
        if not self._dirty:
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.entries, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)
        self._dirty = False
