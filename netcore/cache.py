from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


class Cache(ABC):
    """
    An abstraction of a response cache.

    A response cache has a relatively narrow scope: to remember the raw bytes of
    a response such that they can be recalled later for the same URL. Deciding
    which responses are worth remembering is left to the caller.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """
        Retrieve the cached bytes for `key`.

        @param key
          The resolved URL of the request.
        @return
          The cached bytes, or `None` if there is no valid entry.
        """

    @abstractmethod
    def set(self, key: str, data: bytes, expire_at: Optional[float] = None) -> None:
        """
        Store `data` under `key`, replacing any previous entry.

        @param expire_at
          POSIX timestamp after which the entry is no longer served. `None`
          means the entry never expires.
        """

    @abstractmethod
    def clear(self) -> None:
        """
        Drop every entry unconditionally.
        """

    def close(self):
        """
        Close any resources associated with the cache.
        """


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: bytes
    expire_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expire_at is not None and self.expire_at < now


class ExpiringCache(Cache):
    """
    An in-memory cache whose entries may carry an expiry time.

    Expiry is lazy: an expired entry stays in memory until it is next read, at
    which point it is removed and the read is a miss. All operations hold one
    lock, so concurrent callers observe them in some serial order.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.__clock = clock
        self.__entries = {}  # type: Dict[str, CacheEntry]
        self.__lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self.__lock:
            entry = self.__entries.get(key)
            if entry is None:
                logger.debug('Cache miss for {}'.format(key))
                return None
            if entry.is_expired(self.__clock()):
                logger.info('Cache entry for {} expired at {}. Evicting it.'.format(key, entry.expire_at))
                del self.__entries[key]
                return None
            logger.debug('Cache hit for {}'.format(key))
            return entry.data

    def set(self, key: str, data: bytes, expire_at: Optional[float] = None) -> None:
        with self.__lock:
            logger.debug('Caching {} bytes for {}'.format(len(data), key))
            self.__entries[key] = CacheEntry(key=key, data=bytes(data), expire_at=expire_at)

    def clear(self) -> None:
        with self.__lock:
            logger.info('Clearing {} cache entries'.format(len(self.__entries)))
            self.__entries.clear()

    def __len__(self) -> int:
        with self.__lock:
            return len(self.__entries)

    def __contains__(self, key: str) -> bool:
        with self.__lock:
            return key in self.__entries

    def close(self):
        self.clear()
