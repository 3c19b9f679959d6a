from enum import Enum
from typing import Optional


class NetworkErrorKind(str, Enum):
    INVALID_URL = 'invalidURL'
    INVALID_REQUEST = 'invalidRequest'
    REQUEST_FAILED = 'requestFailed'
    DECODING_ERROR = 'decodingError'
    INVALID_JSON_ERROR = 'invalidJSONError'
    PARSE_ERROR = 'parseError'
    UNKNOWN = 'unknown'
    NO_DATA = 'noData'
    DOWNLOAD_FAILED = 'downloadFailed'
    UPLOAD_FAILED = 'uploadFailed'
    NO_INTERNET_CONNECTION = 'noInternetConnection'
    TIMEOUT = 'timeout'
    NETWORK_UNAVAILABLE = 'networkUnavailable'
    CERTIFICATE_REJECTED = 'certificateRejected'
    NETWORK_ERROR = 'networkError'
    CLIENT_ERROR = 'clientError'
    SERVER_ERROR = 'serverError'


class NetworkError(Exception):
    """
    The terminal failure of one attempt, or of a whole call.

    Two errors are equal when their kind, status code and raw data are equal.
    The underlying cause is carried along for diagnostics only and never takes
    part in comparisons, since arbitrary exceptions are not comparable.
    """

    def __init__(self, kind: NetworkErrorKind, status_code: Optional[int] = None,
                 data: Optional[bytes] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(kind, status_code)
        self.__kind = NetworkErrorKind(kind)
        self.__status_code = status_code
        self.__data = data
        self.__cause = cause

    @property
    def kind(self) -> NetworkErrorKind:
        return self.__kind

    @property
    def status_code(self) -> Optional[int]:
        return self.__status_code

    @property
    def data(self) -> Optional[bytes]:
        return self.__data

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause

    def __eq__(self, other):
        if not isinstance(other, NetworkError):
            return NotImplemented
        return (self.kind, self.status_code, self.data) == (other.kind, other.status_code, other.data)

    def __hash__(self):
        return hash((self.kind, self.status_code, self.data))

    def __str__(self):
        text = self.kind.value
        if self.status_code is not None:
            text += ' ({})'.format(self.status_code)
        if self.cause is not None:
            text += ': {}'.format(self.cause)
        return text

    def __repr__(self):
        return 'NetworkError(kind={!r}, status_code={!r})'.format(self.kind, self.status_code)


class PinningConfigurationError(Exception):
    def __init__(self, host: str, name: str) -> None:
        super().__init__('Pinned certificate {!r} for host {!r} could not be loaded'.format(name, host))
        self.__host = host
        self.__name = name

    @property
    def host(self) -> str:
        return self.__host

    @property
    def name(self) -> str:
        return self.__name
