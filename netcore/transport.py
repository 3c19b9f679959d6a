"""
Transports turn a resolved `Request` into a `Response`.

`RequestsTransport` is built on `requests`. Its HTTPS connections consult an
optional trust hook right after the TLS handshake and before anything is
written to the socket, so a peer whose certificate chain is rejected never sees
the request line, the headers or the body.
"""

from abc import ABC, abstractmethod
import errno
import logging
import socket
import ssl
from typing import Callable, Iterator, List, Optional, Sequence, Union

import requests
from requests.adapters import DEFAULT_POOLBLOCK, HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3 import PoolManager
from urllib3.connection import HTTPSConnection
from urllib3.connectionpool import HTTPSConnectionPool
from urllib3.exceptions import MaxRetryError, NameResolutionError
from urllib3.util.ssl_match_hostname import CertificateError

from .model import Request, Response
from .pinning import TrustDecision


logger = logging.getLogger(__name__)

TrustHook = Callable[[str, Sequence[bytes]], TrustDecision]

NO_CONNECTIVITY_ERRNOS = frozenset({
    errno.ENETUNREACH,
    errno.ENETDOWN,
    errno.EHOSTUNREACH,
})


class TransportError(Exception):
    """
    A dispatch that produced no HTTP response at all.
    """

    def __init__(self, message: str, no_connectivity: bool = False, timed_out: bool = False,
                 certificate_rejected: bool = False) -> None:
        super().__init__(message)
        self.__no_connectivity = no_connectivity
        self.__timed_out = timed_out
        self.__certificate_rejected = certificate_rejected

    @property
    def no_connectivity(self) -> bool:
        return self.__no_connectivity

    @property
    def timed_out(self) -> bool:
        return self.__timed_out

    @property
    def certificate_rejected(self) -> bool:
        """
        The trust hook rejected the peer's certificate chain. Nothing was sent.
        """
        return self.__certificate_rejected


class CertificateRejected(ssl.SSLError):
    def __init__(self, hostname: str) -> None:
        super().__init__('Certificate pinning rejected {}'.format(hostname))
        self.hostname = hostname


class Transport(ABC):
    """
    Sends one request and returns the complete response.

    Implementations must be safe to call from several threads at once.
    """

    @abstractmethod
    def send(self, request: Request, timeout: float) -> Response:
        """
        @raise TransportError
          If no HTTP response could be obtained.
        """

    def close(self):
        """
        Close any resources associated with the transport.
        """


def certificate_chain(sock) -> List[bytes]:
    """
    The DER-encoded certificates presented on a TLS socket.

    Uses the verified chain where there is one, then the chain as sent by the
    peer, and finally the leaf certificate alone.
    """
    for name in ('get_verified_chain', 'get_unverified_chain'):
        get_chain = getattr(sock, name, None)
        if get_chain is None:
            continue
        try:
            chain = [cert for cert in (get_chain() or []) if isinstance(cert, bytes)]
        except (OSError, ValueError):
            chain = []
        if chain:
            return chain

    getpeercert = getattr(sock, 'getpeercert', None)
    if getpeercert is None:
        return []
    try:
        leaf = getpeercert(binary_form=True)
    except (OSError, ValueError):
        return []
    return [leaf] if leaf else []


def _unverified_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class PinningHTTPSConnection(HTTPSConnection):
    """
    An HTTPS connection that asks a trust hook about the peer after the
    handshake.

    The ordinary certificate verification runs first. If it fails, the
    handshake is repeated without verification and the hook alone decides:
    only an explicit accept lets the connection through, which is how a pinned
    self-signed certificate is trusted. A reject always closes the connection.
    """

    trust_hook = None  # type: Optional[TrustHook]

    def connect(self) -> None:
        if self.trust_hook is None:
            super().connect()
            return

        try:
            super().connect()
        except (ssl.SSLCertVerificationError, CertificateError) as verification_error:
            self.close()
            self.__connect_without_verification()
            decision = self.__consult()
            if decision is TrustDecision.ACCEPT:
                logger.info('Pinned certificate of {} accepted in place of CA verification'.format(self.host))
                self.is_verified = True
                return
            self.close()
            if decision is TrustDecision.REJECT:
                raise CertificateRejected(self.host) from verification_error
            raise

        if self.__consult() is TrustDecision.REJECT:
            self.close()
            raise CertificateRejected(self.host)

    def __connect_without_verification(self) -> None:
        saved = self.ssl_context, self.cert_reqs, self.assert_hostname
        self.ssl_context, self.cert_reqs, self.assert_hostname = _unverified_context(), 'CERT_NONE', False
        try:
            super().connect()
        finally:
            self.ssl_context, self.cert_reqs, self.assert_hostname = saved

    def __consult(self) -> TrustDecision:
        decision = self.trust_hook(self.host, certificate_chain(self.sock))
        if decision is TrustDecision.REJECT:
            logger.warning('Trust hook rejected the certificate chain of {}'.format(self.host))
        return decision


class PinningHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = PinningHTTPSConnection
    trust_hook = None  # type: Optional[TrustHook]

    def _new_conn(self):
        conn = super()._new_conn()
        conn.trust_hook = self.trust_hook
        return conn


class PinningPoolManager(PoolManager):
    def __init__(self, trust_hook: Optional[TrustHook] = None, *args, **kw) -> None:
        super().__init__(*args, **kw)
        self.trust_hook = trust_hook
        self.pool_classes_by_scheme = dict(self.pool_classes_by_scheme, https=PinningHTTPSConnectionPool)

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context)
        if isinstance(pool, PinningHTTPSConnectionPool):
            pool.trust_hook = self.trust_hook
        return pool


class PinningHTTPAdapter(HTTPAdapter):
    """
    A `requests` adapter whose HTTPS connections are checked by a trust hook.

    "No opinion" leaves the decision to the ordinary certificate verification
    that `requests` performs. Connections through a proxy are not checked.
    """

    def __init__(self, trust_hook: Optional[TrustHook] = None, *args, **kw) -> None:
        self.trust_hook = trust_hook
        super().__init__(*args, **kw)

    def init_poolmanager(self, connections, maxsize, block=DEFAULT_POOLBLOCK, **pool_kwargs):
        self._pool_connections = connections
        self._pool_maxsize = maxsize
        self._pool_block = block
        self.poolmanager = PinningPoolManager(self.trust_hook, num_pools=connections, maxsize=maxsize,
                                              block=block, **pool_kwargs)


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, MaxRetryError):
            pending.append(current.reason)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        pending.append(current.__cause__)
        pending.append(current.__context__)


def indicates_no_connectivity(exc: BaseException) -> bool:
    for cause in _causes(exc):
        if isinstance(cause, (socket.gaierror, NameResolutionError)):
            return True
        if isinstance(cause, OSError) and cause.errno in NO_CONNECTIVITY_ERRNOS:
            return True
    return False


def indicates_certificate_rejection(exc: BaseException) -> bool:
    return any(isinstance(cause, CertificateRejected) for cause in _causes(exc))


class RequestsTransport(Transport):
    def __init__(self, trust_hook: Optional[TrustHook] = None,
                 session: Optional[requests.Session] = None, verify: Union[bool, str] = True) -> None:
        """
        @param verify
          Passed with every request, so `False` or a CA bundle path is not
          replaced by a bundle named in the environment. Pinned hosts are
          checked either way.
        """
        self.session = session if session is not None else requests.Session()
        self.verify = verify
        self.session.mount('https://', PinningHTTPAdapter(trust_hook))

    def send(self, request: Request, timeout: float) -> Response:
        try:
            requests_response = self.session.request(
                request.method,
                request.uri,
                headers=dict(request.headers),
                data=request.body,
                timeout=timeout,
                verify=self.verify,
            )
        except requests.Timeout as e:
            raise TransportError('Timed out after {}s: {}'.format(timeout, e), timed_out=True) from e
        except requests.exceptions.SSLError as e:
            raise TransportError('TLS failure: {}'.format(e),
                                 certificate_rejected=indicates_certificate_rejection(e)) from e
        except requests.ConnectionError as e:
            raise TransportError('Connection failed: {}'.format(e),
                                 no_connectivity=indicates_no_connectivity(e)) from e
        except requests.RequestException as e:
            raise TransportError('Request failed: {}'.format(e)) from e

        return Response(status=requests_response.status_code,
                        reason=requests_response.reason or '',
                        headers=CaseInsensitiveDict(requests_response.headers),
                        body=requests_response.content)

    def close(self):
        self.session.close()
