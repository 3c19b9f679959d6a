import logging
import threading
from typing import Callable, List


logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivitySignal:
    """
    A boolean "currently reachable" value with change notification.

    Whatever watches the network calls `update()`; listeners are only told about
    actual changes. Listeners run on the updating thread, outside the lock.
    """

    def __init__(self, reachable: bool = True) -> None:
        self.__reachable = reachable
        self.__listeners = []  # type: List[Listener]
        self.__lock = threading.Lock()

    @property
    def is_reachable(self) -> bool:
        with self.__lock:
            return self.__reachable

    def update(self, reachable: bool) -> None:
        with self.__lock:
            if reachable == self.__reachable:
                return
            self.__reachable = reachable
            listeners = list(self.__listeners)

        logger.info('Network is now {}'.format('reachable' if reachable else 'unreachable'))
        for listener in listeners:
            listener(reachable)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self.__lock:
            self.__listeners.append(listener)

        def unsubscribe():
            with self.__lock:
                if listener in self.__listeners:
                    self.__listeners.remove(listener)
        return unsubscribe
