"""Secret key storage keyed by (project, key)."""

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, Optional, Tuple


class SecretKeyStore(ABC):
    """Keyed blob store. Last write wins."""

    @abstractmethod
    def get(self, project: Optional[str], key: Optional[str]) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def set(self, project: Optional[str], key: Optional[str], secret: str) -> None:
        raise NotImplementedError


class InMemorySecretKeyStore(SecretKeyStore):
    def __init__(self):
        self._store: Dict[Tuple[Optional[str], Optional[str]], str] = {}
        self._lock = Lock()

    def get(self, project, key):
        return self._store.get((project, key))

    def set(self, project, key, secret):
        with self._lock:
            self._store[(project, key)] = secret
