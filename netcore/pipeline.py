"""
The request pipeline.

A `Pipeline` turns a `ServiceDescription` into a `Request`, serves it from the
cache when it can, and otherwise dispatches it over a `Transport` on a worker
thread. Failed attempts are offered to the retry strategy, successful ones are
decoded and cached. Every call returns a `concurrent.futures.Future` that
resolves exactly once, either to a `ResultEnvelope` or with a `NetworkError`.
"""

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence

import requests
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from .cache import Cache, ExpiringCache
from .connectivity import ConnectivitySignal
from .decoder import Model, ResponseDecoder
from .encoding import JSON_CONTENT_TYPE, UnserializableBody, encode_json_body, encode_multipart
from .errors import NetworkError, NetworkErrorKind
from .headers import compose, user_agent
from .log import NetworkLogger
from .model import CachePolicy, FileUpload, Request, Response, ResultEnvelope, ServiceDescription, Shape
from .pinning import TrustValidator
from .retry import DefaultRetryStrategy, RetryController, RetryStrategy
from .session import Session
from .transport import RequestsTransport, Transport, TransportError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

SuccessCallback = Callable[[Any], None]
FailureCallback = Callable[[NetworkError], None]
RequestAdapter = Callable[[Request], Request]


@dataclass(frozen=True)
class PipelineConfig:
    timeout: float = DEFAULT_TIMEOUT
    """
    Seconds allowed for each dispatch attempt. Retries get a fresh timeout.
    """

    max_workers: int = 4
    default_headers: Mapping[str, str] = field(default_factory=dict)
    key_paths: Sequence[str] = ()
    cache_policy: CachePolicy = CachePolicy()
    user_agent: Optional[str] = None


def compose_url(service: ServiceDescription) -> str:
    """
    The absolute, percent-encoded URL of a service, query parameters included.

    Encoding is left to `requests`, so the URL sent is the URL prepared here.

    @raise NetworkError
      `INVALID_URL` unless the result is an http(s) URL with a host and a
      valid port.
    """
    url = service.base_url + service.path
    prepared = requests.PreparedRequest()
    try:
        prepared.prepare_url(url, dict(service.query) or None)
        parsed = parse_url(prepared.url)
    except (requests.RequestException, LocationParseError) as e:
        logger.warning('Invalid URL {!r}: {}'.format(url, e))
        raise NetworkError(NetworkErrorKind.INVALID_URL, cause=e) from e
    if parsed.scheme not in ('http', 'https') or not parsed.host:
        logger.warning('Invalid URL {!r}'.format(url))
        raise NetworkError(NetworkErrorKind.INVALID_URL)
    return prepared.url


def classify_status(status: int) -> Optional[NetworkErrorKind]:
    """
    The error kind for an HTTP status, or `None` for a success.
    """
    if 200 <= status <= 299:
        return None
    if 400 <= status <= 499:
        return NetworkErrorKind.CLIENT_ERROR
    if 500 <= status <= 599:
        return NetworkErrorKind.SERVER_ERROR
    return NetworkErrorKind.NETWORK_ERROR


def classify_transport_error(error: TransportError) -> NetworkErrorKind:
    if error.certificate_rejected:
        return NetworkErrorKind.CERTIFICATE_REJECTED
    if error.timed_out:
        return NetworkErrorKind.TIMEOUT
    if error.no_connectivity:
        return NetworkErrorKind.NO_INTERNET_CONNECTION
    return NetworkErrorKind.NETWORK_ERROR


class _Call:
    """
    Delivers the outcome of one call to its future and callbacks, once.
    """

    def __init__(self, on_success: Optional[SuccessCallback], on_failure: Optional[FailureCallback]) -> None:
        self.future = Future()  # type: Future
        self.__on_success = on_success
        self.__on_failure = on_failure
        self.__delivered = False
        self.__lock = threading.Lock()

    def __claim(self) -> bool:
        with self.__lock:
            if self.__delivered:
                return False
            self.__delivered = True
            return True

    def succeed(self, result: Any) -> None:
        if not self.__claim():
            return
        if self.__on_success is not None:
            try:
                self.__on_success(result)
            except Exception:
                logger.exception('Success callback raised')
        self.future.set_result(result)

    def fail(self, error: NetworkError) -> None:
        if not self.__claim():
            return
        if self.__on_failure is not None:
            try:
                self.__on_failure(error)
            except Exception:
                logger.exception('Failure callback raised')
        self.future.set_exception(error)


class Pipeline:
    def __init__(self,
                 transport: Transport,
                 cache: Optional[Cache] = None,
                 retry_strategy: Optional[RetryStrategy] = None,
                 connectivity: Optional[ConnectivitySignal] = None,
                 network_logger: Optional[NetworkLogger] = None,
                 config: PipelineConfig = PipelineConfig(),
                 executor: Optional[Executor] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 request_adapter: Optional[RequestAdapter] = None) -> None:
        """
        @param request_adapter
          Applied to every resolved request before it is looked up in the cache
          or dispatched. It may return a modified copy or raise a `NetworkError`.
        """
        self.transport = transport
        self.cache = cache
        self.retry_strategy = retry_strategy
        self.connectivity = connectivity
        self.network_logger = network_logger
        self.config = config
        self.request_adapter = request_adapter

        self.__owns_executor = executor is None
        self.__executor = executor or ThreadPoolExecutor(max_workers=config.max_workers,
                                                         thread_name_prefix='netcore')
        self.__sleep = sleep
        self.__lock = threading.Lock()
        self.__default_headers = compose(user_agent(config.user_agent) if config.user_agent else {},
                                         config.default_headers)
        self.__key_paths = list(config.key_paths)

    # region Configuration

    @property
    def default_headers(self) -> CaseInsensitiveDict:
        with self.__lock:
            return self.__default_headers.copy()

    def set_default_headers(self, headers: Mapping[str, str]) -> None:
        with self.__lock:
            self.__default_headers = CaseInsensitiveDict(headers)

    def add_default_headers(self, headers: Optional[Mapping[str, str]]) -> None:
        """
        Merge `headers` into the shared defaults sent with every later call.
        """
        if not headers:
            return
        with self.__lock:
            self.__default_headers.update(headers)

    def remove_default_header(self, name: str) -> None:
        with self.__lock:
            self.__default_headers.pop(name, None)

    def delete_all_headers(self) -> None:
        with self.__lock:
            self.__default_headers = CaseInsensitiveDict()

    @property
    def key_paths(self) -> List[str]:
        with self.__lock:
            return list(self.__key_paths)

    def set_key_paths(self, key_paths: Optional[Sequence[str]]) -> None:
        with self.__lock:
            self.__key_paths = list(key_paths or [])

    # endregion

    # region Calls

    def execute(self,
                service: ServiceDescription,
                shape: Shape = Shape.AUTO,
                model: Model = None,
                body: Any = None,
                upload: Optional[FileUpload] = None,
                key_paths: Optional[Sequence[str]] = None,
                cache_policy: Optional[CachePolicy] = None,
                session: Optional[Session] = None,
                on_success: Optional[SuccessCallback] = None,
                on_failure: Optional[FailureCallback] = None) -> Future:
        """
        Perform one API call in the background.

        @param shape
          The payload shape the caller expects. `Shape.AUTO` accepts either.
        @param model
          A dataclass or callable that each decoded JSON value is built into.
        @param body
          A structured body, serialized as a JSON object.
        @param upload
          A file to send as multipart/form-data. Upload calls do not carry the
          shared default headers; only the service's own headers are sent.
        @param key_paths
          Overrides the pipeline's key paths for this call.
        @param session
          Adds the session's bearer authorization to this call.
        @return
          A future resolving to a `ResultEnvelope`, or failing with a
          `NetworkError`.
        """
        call = _Call(on_success, on_failure)
        try:
            request = self.build_request(service, body=body, upload=upload, session=session)
        except NetworkError as error:
            call.fail(error)
            return call.future

        decoder = ResponseDecoder(key_paths if key_paths is not None else self.key_paths, model)
        policy = cache_policy or self.config.cache_policy
        cacheable = self.cache is not None and policy.applies_to(request.method)

        def complete(response: Response) -> ResultEnvelope:
            envelope = self._decode(decoder, response.body, shape, request.uri)
            if cacheable and policy.store_cache and not envelope.is_empty:
                self.cache.set(request.uri, response.body, policy.expire_at)
            return envelope

        def run() -> ResultEnvelope:
            if cacheable and policy.use_cache:
                cached = self.cache.get(request.uri)
                if cached is not None:
                    logger.info('Serving {} from the cache'.format(request.uri))
                    try:
                        return self._decode(decoder, cached, shape, request.uri)
                    except NetworkError as error:
                        logger.warning('Cached response for {} could not be decoded ({}). '
                                       'Dispatching instead.'.format(request.uri, error))
            return self._dispatch(request, complete)

        self._submit(call, run)
        return call.future

    def download(self,
                 service: ServiceDescription,
                 destination: Path,
                 session: Optional[Session] = None,
                 on_success: Optional[SuccessCallback] = None,
                 on_failure: Optional[FailureCallback] = None) -> Future:
        """
        Fetch the service's response body into `destination`.

        @return
          A future resolving to the destination path.
        """
        call = _Call(on_success, on_failure)
        try:
            request = self.build_request(service, session=session)
        except NetworkError as error:
            call.fail(error)
            return call.future
        destination = Path(destination)

        def complete(response: Response) -> Path:
            if not response.body:
                raise NetworkError(NetworkErrorKind.NO_DATA, status_code=response.status)
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(response.body)
            except OSError as e:
                logger.error('Could not write download to {}'.format(destination))
                raise NetworkError(NetworkErrorKind.DOWNLOAD_FAILED, cause=e) from e
            logger.info('Downloaded {} bytes to {}'.format(len(response.body), destination))
            return destination

        self._submit(call, lambda: self._dispatch(request, complete))
        return call.future

    # endregion

    def build_request(self, service: ServiceDescription, body: Any = None,
                      upload: Optional[FileUpload] = None, session: Optional[Session] = None) -> Request:
        """
        Resolve the URL, headers and body of one call.

        @raise NetworkError
          `INVALID_URL` for a malformed URL, `INVALID_REQUEST` for a body that
          cannot be encoded or a request the adapter refuses.
        """
        request = self._resolve(service, body, upload, session)
        if self.request_adapter is None:
            return request
        try:
            adapted = self.request_adapter(request)
        except NetworkError:
            raise
        except Exception as e:
            logger.warning('Request adapter failed for {}: {}'.format(request.uri, e))
            raise NetworkError(NetworkErrorKind.INVALID_REQUEST, cause=e) from e
        if not isinstance(adapted, Request):
            logger.warning('Request adapter returned {!r} for {}'.format(adapted, request.uri))
            raise NetworkError(NetworkErrorKind.INVALID_REQUEST)
        logger.debug('Request adapter resolved {} to {}'.format(request.uri, adapted.uri))
        return adapted

    def _resolve(self, service: ServiceDescription, body: Any, upload: Optional[FileUpload],
                 session: Optional[Session]) -> Request:
        url = compose_url(service)
        auth = session.authorization() if session is not None else {}

        if upload is not None:
            if body is not None:
                logger.warning('Both a body and an upload were given for {}'.format(url))
                raise NetworkError(NetworkErrorKind.INVALID_REQUEST)
            data, multipart_type = encode_multipart(upload)
            headers = compose(service.headers, auth, {'Content-Type': multipart_type})
            return Request(method=service.method.value, uri=url, headers=headers, body=data)

        headers = compose(self.default_headers, service.headers, auth)
        if body is None:
            return Request(method=service.method.value, uri=url, headers=headers, body=service.body)

        try:
            data = encode_json_body(body)
        except UnserializableBody as e:
            logger.warning('Could not encode the body for {}: {}'.format(url, e))
            raise NetworkError(NetworkErrorKind.INVALID_REQUEST, cause=e) from e
        if data is not None and 'Content-Type' not in headers:
            headers['Content-Type'] = JSON_CONTENT_TYPE
        return Request(method=service.method.value, uri=url, headers=headers, body=data)

    def _submit(self, call: _Call, work: Callable[[], Any]) -> None:
        def task():
            try:
                result = work()
            except NetworkError as error:
                call.fail(error)
            except Exception as e:
                logger.exception('Unexpected failure while performing a call')
                call.fail(NetworkError(NetworkErrorKind.UNKNOWN, cause=e))
            else:
                call.succeed(result)

        try:
            self.__executor.submit(task)
        except RuntimeError as e:
            logger.error('Pipeline is closed; cannot perform the call')
            call.fail(NetworkError(NetworkErrorKind.UNKNOWN, cause=e))

    def _dispatch(self, request: Request, complete: Callable[[Response], Any]) -> Any:
        controller = RetryController(self.retry_strategy)
        while True:
            try:
                return complete(self._attempt(request))
            except NetworkError as error:
                delay = controller.on_failure(error)
                if delay is None:
                    raise
            if delay > 0:
                self.__sleep(delay)
            controller.begin_retry()

    def _attempt(self, request: Request) -> Response:
        if self.connectivity is not None and not self.connectivity.is_reachable:
            logger.info('Network is known to be unreachable; not dispatching {}'.format(request.uri))
            raise NetworkError(NetworkErrorKind.NO_INTERNET_CONNECTION)

        if self.network_logger is not None:
            self.network_logger.log_request(request)
        try:
            response = self.transport.send(request, self.config.timeout)
        except TransportError as e:
            if self.network_logger is not None:
                self.network_logger.log_response(request.uri, error=e)
            raise NetworkError(classify_transport_error(e), cause=e) from e
        if self.network_logger is not None:
            self.network_logger.log_response(request.uri, response)

        kind = classify_status(response.status)
        if kind is not None:
            logger.info('{} {} answered {}'.format(request.method, request.uri, response.status))
            raise NetworkError(kind, status_code=response.status, data=response.body)
        return response

    def _decode(self, decoder: ResponseDecoder, body: bytes, shape: Shape, url: str) -> ResultEnvelope:
        try:
            text = body.decode('utf-8')
        except UnicodeDecodeError as e:
            raise NetworkError(NetworkErrorKind.DECODING_ERROR, data=body, cause=e) from e
        return decoder.decode(text, shape=shape, source_url=url)

    def close(self):
        if self.__owns_executor:
            self.__executor.shutdown(wait=True)
        self.transport.close()
        if self.cache is not None:
            self.cache.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def create(certificate_directory: Optional[Path] = None,
           pinned_certificates: Optional[Mapping[str, Sequence[str]]] = None,
           cache: bool = True,
           retry_strategy: Optional[RetryStrategy] = None,
           connectivity: Optional[ConnectivitySignal] = None,
           network_logger: Optional[NetworkLogger] = None,
           config: PipelineConfig = PipelineConfig(),
           request_adapter: Optional[RequestAdapter] = None) -> Pipeline:
    """
    Build a pipeline over `requests` with the usual policies.

    @param pinned_certificates
      Maps hostnames to certificate names, resolved as
      `<certificate_directory>/<name>.cer`.
    @raise PinningConfigurationError
      If any pinned certificate cannot be loaded.
    """
    trust_hook = None
    if pinned_certificates:
        if certificate_directory is None:
            raise ValueError('pinned_certificates requires a certificate_directory')
        trust_hook = TrustValidator.from_directory(Path(certificate_directory), pinned_certificates)

    return Pipeline(RequestsTransport(trust_hook=trust_hook),
                    cache=ExpiringCache() if cache else None,
                    retry_strategy=retry_strategy if retry_strategy is not None else DefaultRetryStrategy(),
                    connectivity=connectivity,
                    network_logger=network_logger,
                    config=config,
                    request_adapter=request_adapter)
