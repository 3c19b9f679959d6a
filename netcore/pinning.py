"""
Certificate pinning.

A `TrustValidator` knows, for some hosts, the exact certificates those hosts are
allowed to present. It is built once and never changes afterwards. It is handed
to a transport as its trust hook and consulted for every TLS connection.
"""

from enum import Enum
import logging
from pathlib import Path
import ssl
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from .errors import PinningConfigurationError


logger = logging.getLogger(__name__)

CERTIFICATE_EXTENSION = '.cer'


class TrustDecision(Enum):
    ACCEPT = 'accept'
    REJECT = 'reject'
    NO_OPINION = 'no opinion'
    """
    No pins are configured for the host; default trust evaluation applies.
    """


def load_certificate(path: Path) -> bytes:
    """
    Read a certificate file as DER bytes. PEM files are converted.
    """
    data = path.read_bytes()
    if data.lstrip().startswith(b'-----BEGIN'):
        return ssl.PEM_cert_to_DER_cert(data.decode('ascii').strip())
    return data


class TrustValidator:
    def __init__(self, pinned_certificates: Mapping[str, Iterable[bytes]]) -> None:
        """
        @param pinned_certificates
          Maps a hostname to the DER-encoded certificates it may present.
        """
        self.__pins = {
            host.lower(): frozenset(bytes(cert) for cert in certs)
            for host, certs in pinned_certificates.items()
        }  # type: Dict[str, FrozenSet[bytes]]

    @classmethod
    def from_directory(cls, directory: Path,
                       certificate_names: Mapping[str, Iterable[str]]) -> 'TrustValidator':
        """
        Build a validator from named certificate files.

        Each name resolves to `<directory>/<name>.cer`. If any of them cannot be
        read, no validator is built at all.

        @raise PinningConfigurationError
          If any named certificate cannot be loaded.
        """
        pins = {}
        for host, names in certificate_names.items():
            certificates = []
            for name in names:
                path = Path(directory) / (name + CERTIFICATE_EXTENSION)
                try:
                    certificates.append(load_certificate(path))
                except (OSError, ValueError) as e:
                    logger.error('Could not load pinned certificate {} for {}'.format(path, host))
                    raise PinningConfigurationError(host, name) from e
            pins[host] = certificates
        return cls(pins)

    @property
    def hosts(self) -> FrozenSet[str]:
        return frozenset(self.__pins)

    def pinned_certificates(self, hostname: str) -> FrozenSet[bytes]:
        return self.__pins.get(hostname.lower(), frozenset())

    def validate(self, hostname: str, presented_chain: Optional[Sequence[bytes]]) -> TrustDecision:
        pinned = self.pinned_certificates(hostname)
        if not pinned:
            return TrustDecision.NO_OPINION
        if not presented_chain:
            logger.warning('Host {} is pinned but presented no certificate chain'.format(hostname))
            return TrustDecision.REJECT

        for certificate in presented_chain:
            if bytes(certificate) in pinned:
                logger.debug('Pinned certificate matched for {}'.format(hostname))
                return TrustDecision.ACCEPT

        logger.warning('No certificate presented by {} matches its pinned set'.format(hostname))
        return TrustDecision.REJECT

    __call__ = validate
