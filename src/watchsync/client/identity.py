"""Small JSON store for the display name and owner credential."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class IdentityStore:
    """Remembers what the coordinator told us about ourselves.

    ``auth_name`` replaces the stored display name; ``not_owner`` drops the
    owner credential so the next join is an ordinary one. A missing or corrupt
    file reads as empty.
    """

    def __init__(self, path: Optional[Path | str] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("identity: unreadable store at %s; starting empty", self.path, exc_info=True)
            return
        if isinstance(data, dict):
            self._data = {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    @property
    def name(self) -> Optional[str]:
        return self._data.get("name")

    @property
    def owner_auth(self) -> Optional[str]:
        return self._data.get("owner_auth")

    def remember_name(self, name: str) -> None:
        if self._data.get("name") == name:
            return
        self._data["name"] = str(name)
        self._save()
        logger.info("identity: display name is now %r", name)

    def remember_owner_auth(self, credential: str) -> None:
        self._data["owner_auth"] = str(credential)
        self._save()

    def clear_owner_auth(self) -> None:
        if self._data.pop("owner_auth", None) is not None:
            self._save()
            logger.info("identity: owner credential cleared")

    def as_dict(self) -> dict[str, str]:
        return dict(self._data)


__all__ = ["IdentityStore"]
