"""File store for saved maps — one JSON index per account on disk."""

from __future__ import annotations

import hashlib
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger


class FileStore:
    """Per-account named documents persisted as JSON files.

    Layout::

        <root>/<sha256(email)[:16]>/files.json
            {"email": ..., "files": {name: {"content", "created_at", "updated_at"}}}
    """

    def __init__(self, root: Path):
        """Initialize the store.

        Args:
            root: Directory holding one subdirectory per account
        """
        self.root = Path(root).expanduser()
        self._lock = threading.Lock()

    def _index_path(self, email: str) -> Path:
        key = hashlib.sha256(email.strip().lower().encode()).hexdigest()[:16]
        return self.root / key / "files.json"

    def _read(self, email: str) -> dict:
        path = self._index_path(email)
        if not path.exists():
            return {"email": email, "files": {}}
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read file index for {email}: {e}")
            raise

    def _write(self, email: str, index: dict) -> None:
        path = self._index_path(email)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(index, f, ensure_ascii=False, indent=2)
        tmp.replace(path)

    # ==================
    # Account files
    # ==================

    def save(self, email: str, file_name: str, content: Any) -> None:
        """Create or overwrite a document."""
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            index = self._read(email)
            existing = index["files"].get(file_name)
            index["files"][file_name] = {
                "content": content,
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
            }
            self._write(email, index)
        logger.info(f"Saved file '{file_name}' for {email}")

    def load(self, email: str, file_name: str) -> Optional[Any]:
        """Stored content of a document, or None if it doesn't exist."""
        with self._lock:
            entry = self._read(email)["files"].get(file_name)
        return entry["content"] if entry else None

    def list_files(self, email: str) -> list[dict]:
        """Documents of one account as ``{file_name, created_at}``, oldest first."""
        with self._lock:
            files = self._read(email)["files"]
        rows = [
            {"file_name": name, "created_at": entry["created_at"]}
            for name, entry in files.items()
        ]
        return sorted(rows, key=lambda r: r["created_at"])

    def delete(self, email: str, file_name: str) -> bool:
        """Delete a document. Returns False if it didn't exist."""
        with self._lock:
            index = self._read(email)
            if file_name not in index["files"]:
                return False
            del index["files"][file_name]
            self._write(email, index)
        logger.info(f"Deleted file '{file_name}' for {email}")
        return True

    # ==================
    # All accounts
    # ==================

    def has_account(self, email: str) -> bool:
        return self._index_path(email).exists()

    def list_all(self) -> list[dict]:
        """Every account's documents as ``{email, fileName, createdAt}``, newest first."""
        rows = []
        with self._lock:
            for path in self.root.glob("*/files.json"):
                try:
                    with open(path, encoding="utf-8") as f:
                        index = json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Skipping unreadable file index {path}: {e}")
                    continue
                email = index.get("email", "")
                if not email:
                    continue
                for name, entry in index.get("files", {}).items():
                    rows.append({
                        "email": email,
                        "fileName": name,
                        "createdAt": entry.get("created_at", ""),
                    })
        return sorted(rows, key=lambda r: r["createdAt"], reverse=True)
