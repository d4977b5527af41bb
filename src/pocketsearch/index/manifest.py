"""Persisted fingerprints of everything that has been indexed."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pocketsearch.models import MANIFEST_VERSION, Manifest, ManifestEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "index_manifest_v2.json"


class ManifestStore:
    """Load and atomically save the manifest as a single JSON document.

    An unreadable, corrupt or differently versioned document loads as an
    empty manifest, which makes the next sync re-index everything.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Manifest:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Manifest()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Unable to read manifest %s: %s", self.path, exc)
            return Manifest()

        if not raw.strip():
            return Manifest()

        try:
            data = json.loads(raw)
            version = int(data.get("version", 0))
            if version != MANIFEST_VERSION:
                LOGGER.warning(
                    "Manifest %s has version %s, expected %s; starting from scratch",
                    self.path,
                    version,
                    MANIFEST_VERSION,
                )
                return Manifest()
            entries = {
                str(key): ManifestEntry.from_dict(str(key), value)
                for key, value in data.get("entries", {}).items()
            }
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            LOGGER.warning("Corrupt manifest %s: %s", self.path, exc)
            return Manifest()

        return Manifest(version=version, entries=entries)

    def save(self, manifest: Manifest) -> None:
        payload = json.dumps(manifest.to_dict(), sort_keys=True, ensure_ascii=False, indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
