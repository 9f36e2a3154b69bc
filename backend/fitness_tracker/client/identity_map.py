"""
Client-side memory of which Stripe customer belongs to which user.

Values are kept under ``stripe_customer_id_<userId>``. An older client
release stored a single unscoped ``stripe_customer_id``; it is removed
whenever a scoped value is written so it can never leak across users.
"""

import json
import logging
from collections.abc import MutableMapping
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

KEY_PREFIX = "stripe_customer_id_"
LEGACY_KEY = "stripe_customer_id"


class JsonFileStorage(MutableMapping):
    """Persistent string mapping backed by a JSON file, written on every change."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._write()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class BillingIdentityMap:
    """
    Per-user mapping from user id to Stripe customer id.

    Any mutable mapping works as storage: a plain dict for a session,
    ``JsonFileStorage`` to survive restarts.
    """

    def __init__(self, storage: Optional[MutableMapping] = None):
        self.storage = storage if storage is not None else {}

    @staticmethod
    def key_for(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def get(self, user_id: Optional[str]) -> Optional[str]:
        """Return the stored customer id for ``user_id``, if any."""
        if not user_id:
            return None
        return self.storage.get(self.key_for(user_id))

    def set(self, user_id: Optional[str], customer_id: str) -> None:
        """Store ``customer_id`` for ``user_id`` and drop the legacy key."""
        if not user_id:
            return
        self.storage[self.key_for(user_id)] = customer_id
        self.storage.pop(LEGACY_KEY, None)
        logger.debug(f"Stored customer {customer_id} for user {user_id}")

    def clear(self, user_id: Optional[str]) -> None:
        """Forget the customer id of ``user_id`` (and the legacy key)."""
        if not user_id:
            return
        self.storage.pop(self.key_for(user_id), None)
        self.storage.pop(LEGACY_KEY, None)
        logger.info(f"Cleared stored customer id for user {user_id}")

    def clear_all(self) -> None:
        """Forget every stored customer id, e.g. on sign-out."""
        for key in [k for k in self.storage if k == LEGACY_KEY or k.startswith(KEY_PREFIX)]:
            del self.storage[key]
