from dataclasses import dataclass, replace
import logging
import threading
import time
from typing import Dict, Optional

from .headers import bearer_authorization


logger = logging.getLogger(__name__)

REFRESH_THRESHOLD_SECONDS = 5 * 60


@dataclass(frozen=True)
class Session:
    """
    The credentials of one signed-in user.

    Token rotation produces a new `Session` through `with_tokens()`; an
    instance never changes.
    """

    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expiration: Optional[float] = None
    """
    POSIX timestamp at which the access token stops being valid.
    """

    @property
    def is_expired(self) -> bool:
        if self.expiration is None:
            return False
        return time.time() >= self.expiration

    @property
    def should_refresh(self) -> bool:
        if self.expiration is None or self.refresh_token is None:
            return False
        return time.time() + REFRESH_THRESHOLD_SECONDS >= self.expiration

    def with_tokens(self, access_token: str, refresh_token: Optional[str] = None,
                    expiration: Optional[float] = None) -> 'Session':
        """
        A copy carrying new tokens. Omitted values keep their current value.
        """
        return replace(self,
                       access_token=access_token,
                       refresh_token=refresh_token if refresh_token is not None else self.refresh_token,
                       expiration=expiration if expiration is not None else self.expiration)

    def authorization(self) -> Dict[str, str]:
        return bearer_authorization(self.access_token)


class SessionStore:
    """
    Keeps the current session of each user in memory.
    """

    def __init__(self) -> None:
        self.__sessions = {}  # type: Dict[str, Session]
        self.__lock = threading.Lock()

    def set(self, session: Session) -> None:
        with self.__lock:
            self.__sessions[session.user_id] = session

    def get(self, user_id: str) -> Optional[Session]:
        """
        The user's session, or `None`. An expired session is removed on read.
        """
        with self.__lock:
            session = self.__sessions.get(user_id)
            if session is None:
                return None
            if session.is_expired:
                logger.info('Session of user {} has expired. Removing it.'.format(user_id))
                del self.__sessions[user_id]
                return None
            return session

    def remove(self, user_id: str) -> None:
        with self.__lock:
            self.__sessions.pop(user_id, None)

    def clear(self) -> None:
        with self.__lock:
            self.__sessions.clear()
