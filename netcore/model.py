"""
Defines the value types passed through the request pipeline.

These types are as simple as possible in order to most conveniently consume and
produce instances of them. All of them are immutable once constructed.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Generic, List, Mapping, Optional, TypeVar, Union

from requests.structures import CaseInsensitiveDict


T = TypeVar('T')


class HTTPMethod(str, Enum):
    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    DELETE = 'DELETE'
    PATCH = 'PATCH'
    HEAD = 'HEAD'
    OPTIONS = 'OPTIONS'
    TRACE = 'TRACE'
    CONNECT = 'CONNECT'


def _freeze_headers(headers: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(CaseInsensitiveDict(headers or {}))


def _freeze_query(query: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(query or {}))


@dataclass(frozen=True)
class ServiceDescription:
    """
    Declarative description of one API call.

    Headers are kept in insertion order and are unique by case-insensitive
    name; setting the same name twice keeps the position of the first and the
    value of the last.

    Instances are hashable. Headers and query parameters are read-only views and
    take part in equality but not in the hash.
    """

    base_url: str
    """
    The scheme and host part of the URL. E.g., "https://api.example.com".
    """

    path: str = ''
    """
    Appended verbatim to `base_url` before percent-encoding.
    """

    method: HTTPMethod = HTTPMethod.GET

    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict, hash=False)
    """
    Per-call headers. These override the pipeline's shared defaults.
    """

    body: Optional[bytes] = None
    """
    A raw payload, sent as-is. Structured bodies are passed to the pipeline
    separately so they can be serialized first.
    """

    query: Mapping[str, Any] = field(default_factory=dict, hash=False)
    """
    Query parameters, appended after any query already in `path`. A list value
    repeats the parameter; `None` values are dropped.
    """

    def __post_init__(self):
        object.__setattr__(self, 'method', HTTPMethod(self.method))
        object.__setattr__(self, 'headers', _freeze_headers(self.headers))
        object.__setattr__(self, 'query', _freeze_query(self.query))

    @property
    def url(self) -> str:
        return self.base_url + self.path


@dataclass(frozen=True)
class Request:
    """
    A fully resolved request, ready to hand to a transport.
    """

    method: str
    """
    The HTTP method of the request. E.g., "GET".
    """

    uri: str
    """
    The percent-encoded URL of the resource being requested.
    """

    headers: Mapping[str, str]
    """
    All the headers being sent with the request.
    """

    body: Optional[bytes] = field(default=None, compare=False)


@dataclass(frozen=True)
class Response:
    """
    Represents an arbitrary response, without any bells and whistles.

    We deliberately do not expose `requests.Response`; we just want a type that
    does what we need, and nothing more.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 400.
    """

    reason: str
    """
    The reason string, which relates to the status code.
    """

    headers: Mapping[str, str]
    """
    All the headers sent with the response.
    """

    body: bytes = field(default=b'', compare=False)
    """
    The complete response payload.
    """


@dataclass(frozen=True)
class FileUpload:
    """
    A file to send as the terminal part of a multipart/form-data body.
    """

    data: bytes
    filename: str = ''
    mime_type: str = 'application/octet-stream'
    parameters: Mapping[str, str] = field(default_factory=dict)
    """
    Plain form fields, sent as one part each before the file part.
    """


@dataclass(frozen=True)
class CachePolicy:
    use_cache: bool = True
    """
    Look the resolved URL up in the cache before dispatching.
    """

    store_cache: bool = True
    """
    Store the raw bytes of a successfully decoded response.
    """

    expire_at: Optional[float] = None
    """
    POSIX timestamp after which a stored entry is no longer served. `None`
    means the entry never expires.
    """

    methods: FrozenSet[str] = frozenset({'GET'})

    def applies_to(self, method: str) -> bool:
        return method in self.methods


NO_CACHE = CachePolicy(use_cache=False, store_cache=False)


class Shape(str, Enum):
    SINGLE = 'single'
    SEQUENCE = 'sequence'
    AUTO = 'auto'


@dataclass(frozen=True)
class ResultEnvelope(Generic[T]):
    """
    The successful outcome of one call.

    `payload` is a single decoded value, a list of decoded values, or `None`
    when the body could not be read as JSON at all. `shape` says which.
    """

    payload: Union[T, List[T], None]
    raw_json: str
    source_url: Optional[str] = None
    shape: Optional[Shape] = None

    @property
    def is_empty(self) -> bool:
        return self.shape is None

    @property
    def is_sequence(self) -> bool:
        return self.shape is Shape.SEQUENCE

    def items(self) -> List[Any]:
        """Return the payload as a list, whatever its shape."""
        if self.shape is None:
            return []
        if self.shape is Shape.SEQUENCE:
            return list(self.payload)
        return [self.payload]
