from dataclasses import replace
from ddt import ddt, data, unpack
from pathlib import Path
from tempfile import TemporaryDirectory
import threading
from unittest import TestCase

from mockito import mock, unstub, verify

from netcore.cache import ExpiringCache
from netcore.connectivity import ConnectivitySignal
from netcore.errors import NetworkError, NetworkErrorKind
from netcore.log import NetworkLogger
from netcore.model import CachePolicy, FileUpload, HTTPMethod, NO_CACHE, Response, ServiceDescription, Shape
from netcore.pipeline import Pipeline, PipelineConfig, classify_status, compose_url, create
from netcore.retry import DefaultRetryStrategy, FunctionRetryStrategy, RETRY
from netcore.session import Session
from netcore.transport import RequestsTransport, Transport, TransportError


class ScriptedTransport(Transport):
    """
    Plays back one scripted outcome per `send()`; the last outcome repeats.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.timeouts = []
        self.closed = False
        self.__lock = threading.Lock()

    def send(self, request, timeout):
        with self.__lock:
            self.requests.append(request)
            self.timeouts.append(timeout)
            outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def ok(body: bytes, status: int = 200) -> Response:
    return Response(status=status, reason='OK', headers={'Content-Type': 'application/json'}, body=body)


def failed(status: int, body: bytes = b'') -> Response:
    return Response(status=status, reason='Error', headers={}, body=body)


SHIPS = ServiceDescription('https://swapi.dev', '/api/starships/')


class PipelineTestCase(TestCase):
    def setUp(self):
        self.sleeps = []
        self.clock = Clock()

    def tearDown(self):
        unstub()

    def make(self, *outcomes, **kwargs) -> Pipeline:
        self.transport = ScriptedTransport(*outcomes)
        kwargs.setdefault('sleep', self.sleeps.append)
        pipeline = Pipeline(self.transport, **kwargs)
        self.addCleanup(pipeline.close)
        return pipeline

    def error_of(self, future) -> NetworkError:
        error = future.exception(timeout=5)
        self.assertIsInstance(error, NetworkError)
        return error


@ddt
class TestExecute(PipelineTestCase):
    def test_object_response(self):
        pipeline = self.make(ok(b'{"name": "X-wing"}'))

        envelope = pipeline.execute(SHIPS).result(timeout=5)

        self.assertIs(Shape.SINGLE, envelope.shape)
        self.assertEqual({'name': 'X-wing'}, envelope.payload)
        self.assertEqual('{"name": "X-wing"}', envelope.raw_json)
        self.assertEqual('https://swapi.dev/api/starships/', envelope.source_url)

    def test_array_response(self):
        pipeline = self.make(ok(b'[{"name": "X-wing"}, {"name": "Y-wing"}]'))

        envelope = pipeline.execute(SHIPS, shape=Shape.SEQUENCE).result(timeout=5)

        self.assertEqual(['X-wing', 'Y-wing'], [ship['name'] for ship in envelope.items()])

    def test_request_is_sent_with_method_url_and_timeout(self):
        pipeline = self.make(ok(b'{}'), config=PipelineConfig(timeout=12.5))
        service = ServiceDescription('https://api.example.com', '/search?q=two words', HTTPMethod.DELETE)

        pipeline.execute(service).result(timeout=5)

        request = self.transport.requests[0]
        self.assertEqual('DELETE', request.method)
        self.assertEqual('https://api.example.com/search?q=two%20words', request.uri)
        self.assertEqual([12.5], self.transport.timeouts)

    @data(
        (404, NetworkErrorKind.CLIENT_ERROR),
        (401, NetworkErrorKind.CLIENT_ERROR),
        (503, NetworkErrorKind.SERVER_ERROR),
        (500, NetworkErrorKind.SERVER_ERROR),
        (302, NetworkErrorKind.NETWORK_ERROR),
    )
    @unpack
    def test_error_status(self, status, kind):
        pipeline = self.make(failed(status, b'{"detail": "nope"}'))

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertEqual(NetworkError(kind, status_code=status, data=b'{"detail": "nope"}'), error)

    @data(
        (TransportError('unreachable', no_connectivity=True), NetworkErrorKind.NO_INTERNET_CONNECTION),
        (TransportError('slow', timed_out=True), NetworkErrorKind.TIMEOUT),
        (TransportError('reset'), NetworkErrorKind.NETWORK_ERROR),
        (TransportError('pinned', certificate_rejected=True), NetworkErrorKind.CERTIFICATE_REJECTED),
    )
    @unpack
    def test_transport_error(self, exception, kind):
        pipeline = self.make(exception)

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertIs(kind, error.kind)
        self.assertIsNone(error.status_code)
        self.assertIs(exception, error.cause)

    @data('not a url', 'ftp://example.com', 'https://', '', 'http://api.example.com:notaport')
    def test_invalid_url_is_never_dispatched(self, base_url):
        pipeline = self.make(ok(b'{}'))

        error = self.error_of(pipeline.execute(ServiceDescription(base_url, '/x')))

        self.assertIs(NetworkErrorKind.INVALID_URL, error.kind)
        self.assertEqual([], self.transport.requests)

    def test_non_utf8_body_is_a_decoding_error(self):
        pipeline = self.make(ok(b'\xff\xfe{}'))

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertIs(NetworkErrorKind.DECODING_ERROR, error.kind)

    def test_non_json_body_is_an_empty_envelope(self):
        pipeline = self.make(ok(b'<html></html>'))

        envelope = pipeline.execute(SHIPS).result(timeout=5)

        self.assertTrue(envelope.is_empty)
        self.assertEqual('<html></html>', envelope.raw_json)

    def test_query_parameters_are_sent(self):
        pipeline = self.make(ok(b'{}'))
        service = ServiceDescription('https://api.example.com', '/search', query={'q': 'x wing', 'page': 2})

        pipeline.execute(service).result(timeout=5)

        self.assertEqual('https://api.example.com/search?q=x+wing&page=2', self.transport.requests[0].uri)

    def test_key_paths(self):
        pipeline = self.make(ok(b'{"data": {"items": [1, 2]}}'), config=PipelineConfig(key_paths=['items']))

        self.assertIs(NetworkErrorKind.INVALID_JSON_ERROR, self.error_of(pipeline.execute(SHIPS)).kind)

        pipeline.set_key_paths(['items', 'data/items'])
        self.assertEqual([1, 2], pipeline.execute(SHIPS).result(timeout=5).payload)

    def test_per_call_key_paths_override(self):
        pipeline = self.make(ok(b'{"results": {"id": 7}}'), config=PipelineConfig(key_paths=['items']))

        envelope = pipeline.execute(SHIPS, key_paths=['results']).result(timeout=5)

        self.assertEqual({'id': 7}, envelope.payload)
        self.assertEqual(['items'], pipeline.key_paths)

    def test_model(self):
        pipeline = self.make(ok(b'[{"name": "A"}, {"name": "B"}]'))

        envelope = pipeline.execute(SHIPS, model=lambda value: value['name']).result(timeout=5)

        self.assertEqual(['A', 'B'], envelope.payload)

    def test_model_raising_anything_is_a_parse_error(self):
        pipeline = self.make(ok(b'{"name": "X-wing"}'))

        error = self.error_of(pipeline.execute(SHIPS, model=lambda value: value.name))

        self.assertIs(NetworkErrorKind.PARSE_ERROR, error.kind)
        self.assertIsInstance(error.cause, AttributeError)

    def test_shape_mismatch_is_a_parse_error(self):
        pipeline = self.make(ok(b'{"name": "X-wing"}'))

        self.assertIs(NetworkErrorKind.PARSE_ERROR, self.error_of(pipeline.execute(SHIPS, shape=Shape.SEQUENCE)).kind)


class TestCallbacks(PipelineTestCase):
    def test_success_callback_runs_once_before_the_future_resolves(self):
        pipeline = self.make(ok(b'{"a": 1}'))
        seen = []

        future = pipeline.execute(SHIPS, on_success=seen.append, on_failure=seen.append)
        envelope = future.result(timeout=5)

        self.assertEqual([envelope], seen)

    def test_failure_callback_runs_once(self):
        pipeline = self.make(failed(404))
        successes, failures = [], []

        error = self.error_of(pipeline.execute(SHIPS, on_success=successes.append, on_failure=failures.append))

        self.assertEqual([], successes)
        self.assertEqual([error], failures)

    def test_failure_callback_runs_for_synchronous_failures(self):
        pipeline = self.make(ok(b'{}'))
        failures = []

        future = pipeline.execute(ServiceDescription('nope'), on_failure=failures.append)

        self.assertTrue(future.done())
        self.assertIs(NetworkErrorKind.INVALID_URL, failures[0].kind)

    def test_raising_callback_does_not_prevent_delivery(self):
        pipeline = self.make(ok(b'{"a": 1}'))

        def explode(envelope):
            raise ValueError('boom')

        with self.assertLogs('netcore.pipeline', level='ERROR'):
            envelope = pipeline.execute(SHIPS, on_success=explode).result(timeout=5)

        self.assertEqual({'a': 1}, envelope.payload)


@ddt
class TestRetry(PipelineTestCase):
    def test_transient_failures_are_retried_with_backoff(self):
        pipeline = self.make(failed(503), TransportError('reset'), ok(b'{"a": 1}'),
                             retry_strategy=DefaultRetryStrategy(max_retries=3))

        envelope = pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual({'a': 1}, envelope.payload)
        self.assertEqual(3, len(self.transport.requests))
        self.assertEqual([1.0, 2.0], self.sleeps)

    def test_retries_are_bounded(self):
        pipeline = self.make(failed(503), retry_strategy=DefaultRetryStrategy(max_retries=2))

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertEqual(NetworkError(NetworkErrorKind.SERVER_ERROR, status_code=503, data=b''), error)
        self.assertEqual(3, len(self.transport.requests))
        self.assertEqual([1.0, 2.0], self.sleeps)

    @data(404, 400, 403)
    def test_client_errors_are_not_retried(self, status):
        pipeline = self.make(failed(status), ok(b'{}'), retry_strategy=DefaultRetryStrategy())

        self.assertIs(NetworkErrorKind.CLIENT_ERROR, self.error_of(pipeline.execute(SHIPS)).kind)
        self.assertEqual(1, len(self.transport.requests))
        self.assertEqual([], self.sleeps)

    def test_immediate_retry_does_not_sleep(self):
        pipeline = self.make(failed(500), ok(b'{}'),
                             retry_strategy=FunctionRetryStrategy(1, lambda error, count: RETRY))

        pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual(2, len(self.transport.requests))
        self.assertEqual([], self.sleeps)

    def test_decode_failures_are_offered_to_the_strategy(self):
        decisions = []

        def decide(error, count):
            decisions.append((error.kind, count))
            return RETRY

        pipeline = self.make(ok(b'\xff'), ok(b'{}'), retry_strategy=FunctionRetryStrategy(1, decide))

        pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual([(NetworkErrorKind.DECODING_ERROR, 0)], decisions)

    def test_certificate_rejection_is_not_retried(self):
        pipeline = self.make(TransportError('pinned', certificate_rejected=True), ok(b'{}'),
                             retry_strategy=DefaultRetryStrategy(max_retries=3))

        self.assertIs(NetworkErrorKind.CERTIFICATE_REJECTED, self.error_of(pipeline.execute(SHIPS)).kind)
        self.assertEqual(1, len(self.transport.requests))
        self.assertEqual([], self.sleeps)

    def test_retry_counts_are_per_call(self):
        strategy = DefaultRetryStrategy(max_retries=1)
        pipeline = self.make(failed(503), retry_strategy=strategy)

        for _ in range(3):
            self.error_of(pipeline.execute(SHIPS))

        self.assertEqual(6, len(self.transport.requests))


class TestCaching(PipelineTestCase):
    def setUp(self):
        super().setUp()
        self.cache = ExpiringCache(clock=self.clock)

    def test_cache_hit_skips_the_transport(self):
        pipeline = self.make(ok(b'{"a": 1}'), cache=self.cache)

        first = pipeline.execute(SHIPS).result(timeout=5)
        second = pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual(first.payload, second.payload)
        self.assertEqual(1, len(self.transport.requests))
        self.assertEqual(b'{"a": 1}', self.cache.get('https://swapi.dev/api/starships/'))

    def test_expired_entries_are_fetched_again(self):
        policy = CachePolicy(expire_at=self.clock.now + 60)
        pipeline = self.make(ok(b'{"a": 1}'), cache=self.cache, config=PipelineConfig(cache_policy=policy))

        pipeline.execute(SHIPS).result(timeout=5)
        pipeline.execute(SHIPS).result(timeout=5)
        self.clock.now += 61
        pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual(2, len(self.transport.requests))

    def test_post_is_not_cached(self):
        pipeline = self.make(ok(b'{"a": 1}'), cache=self.cache)
        service = ServiceDescription('https://swapi.dev', '/api/starships/', HTTPMethod.POST)

        pipeline.execute(service).result(timeout=5)
        pipeline.execute(service).result(timeout=5)

        self.assertEqual(2, len(self.transport.requests))
        self.assertEqual(0, len(self.cache))

    def test_failures_are_not_cached(self):
        pipeline = self.make(failed(500), cache=self.cache)

        self.error_of(pipeline.execute(SHIPS))

        self.assertEqual(0, len(self.cache))

    def test_no_cache_policy(self):
        pipeline = self.make(ok(b'{"a": 1}'), cache=self.cache)

        pipeline.execute(SHIPS, cache_policy=NO_CACHE).result(timeout=5)
        pipeline.execute(SHIPS, cache_policy=NO_CACHE).result(timeout=5)

        self.assertEqual(2, len(self.transport.requests))
        self.assertEqual(0, len(self.cache))

    def test_empty_envelopes_are_not_cached(self):
        pipeline = self.make(ok(b'<html></html>'), cache=self.cache)

        first = pipeline.execute(SHIPS).result(timeout=5)
        second = pipeline.execute(SHIPS).result(timeout=5)

        self.assertTrue(first.is_empty)
        self.assertTrue(second.is_empty)
        self.assertEqual(2, len(self.transport.requests))
        self.assertEqual(0, len(self.cache))

    def test_undecodable_cache_entry_falls_back_to_the_network(self):
        self.cache.set('https://swapi.dev/api/starships/', b'\xff')
        pipeline = self.make(ok(b'{"a": 1}'), cache=self.cache)

        envelope = pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual({'a': 1}, envelope.payload)
        self.assertEqual(1, len(self.transport.requests))


class TestHeaders(PipelineTestCase):
    def test_layers(self):
        pipeline = self.make(ok(b'{}'), config=PipelineConfig(default_headers={'Accept': 'text/plain', 'X-App': '1'},
                                                              user_agent='netcore-test'))
        service = ServiceDescription('https://api.example.com', '/me', headers={'accept': 'application/json'})

        pipeline.execute(service, session=Session('luke', 'token-1')).result(timeout=5)

        headers = self.transport.requests[0].headers
        self.assertEqual('application/json', headers['Accept'])
        self.assertEqual('1', headers['X-App'])
        self.assertEqual('netcore-test', headers['User-Agent'])
        self.assertEqual('Bearer token-1', headers['Authorization'])
        self.assertEqual('text/plain', pipeline.default_headers['Accept'])

    def test_default_header_management(self):
        pipeline = self.make(ok(b'{}'))

        pipeline.add_default_headers({'X-One': '1', 'X-Two': '2'})
        pipeline.add_default_headers(None)
        pipeline.remove_default_header('x-one')
        pipeline.execute(SHIPS).result(timeout=5)
        pipeline.delete_all_headers()
        pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual({'X-Two': '2'}, dict(self.transport.requests[0].headers))
        self.assertEqual({}, dict(self.transport.requests[1].headers))

    def test_set_default_headers_replaces(self):
        pipeline = self.make(ok(b'{}'), config=PipelineConfig(default_headers={'X-Old': '1'}))

        pipeline.set_default_headers({'X-New': '2'})

        self.assertEqual({'X-New': '2'}, dict(pipeline.default_headers))

    def test_json_body(self):
        pipeline = self.make(ok(b'{}'))
        service = ServiceDescription('https://api.example.com', '/ships', HTTPMethod.POST)

        pipeline.execute(service, body={'name': 'X-wing', 'crew': [1]}).result(timeout=5)

        request = self.transport.requests[0]
        self.assertEqual(b'{"name": "X-wing", "crew": [1]}', request.body)
        self.assertEqual('application/json', request.headers['Content-Type'])

    def test_json_body_keeps_explicit_content_type(self):
        pipeline = self.make(ok(b'{}'))
        service = ServiceDescription('https://api.example.com', '/ships', HTTPMethod.POST,
                                     headers={'content-type': 'application/vnd.api+json'})

        pipeline.execute(service, body={'a': 1}).result(timeout=5)

        self.assertEqual('application/vnd.api+json', self.transport.requests[0].headers['Content-Type'])

    def test_raw_body_is_sent_as_is(self):
        pipeline = self.make(ok(b'{}'))
        service = ServiceDescription('https://api.example.com', '/ships', HTTPMethod.PUT, body=b'raw')

        pipeline.execute(service).result(timeout=5)

        self.assertEqual(b'raw', self.transport.requests[0].body)
        self.assertNotIn('Content-Type', self.transport.requests[0].headers)

    def test_unserializable_body(self):
        pipeline = self.make(ok(b'{}'))

        error = self.error_of(pipeline.execute(SHIPS, body=[1, 2]))

        self.assertIs(NetworkErrorKind.INVALID_REQUEST, error.kind)
        self.assertEqual([], self.transport.requests)

    def test_upload_sends_only_its_own_headers(self):
        pipeline = self.make(ok(b'{}'), config=PipelineConfig(default_headers={'X-App': '1'}))
        service = ServiceDescription('https://api.example.com', '/avatar', HTTPMethod.POST, headers={'X-Upload': 'yes'})

        pipeline.execute(service, upload=FileUpload(b'data', 'a.png', 'image/png')).result(timeout=5)

        request = self.transport.requests[0]
        self.assertEqual('yes', request.headers['X-Upload'])
        self.assertNotIn('X-App', request.headers)
        self.assertTrue(request.headers['Content-Type'].startswith('multipart/form-data; boundary=Boundary-'))
        self.assertIn(b'filename="a.png"', request.body)
        self.assertEqual('1', pipeline.default_headers['X-App'])

    def test_upload_with_body_is_rejected(self):
        pipeline = self.make(ok(b'{}'))

        error = self.error_of(pipeline.execute(SHIPS, body={'a': 1}, upload=FileUpload(b'x')))

        self.assertIs(NetworkErrorKind.INVALID_REQUEST, error.kind)


class TestRequestAdapter(PipelineTestCase):
    def test_adapted_request_is_sent(self):
        def sign(request):
            return replace(request, headers=dict(request.headers, Signature='abc'))

        pipeline = self.make(ok(b'{}'), request_adapter=sign)

        pipeline.execute(SHIPS).result(timeout=5)

        self.assertEqual('abc', self.transport.requests[0].headers['Signature'])

    def test_adapter_runs_before_the_cache_lookup(self):
        cache = ExpiringCache(clock=self.clock)
        cache.set('https://mirror.example.com/api/starships/', b'{"a": 1}')

        def mirror(request):
            return replace(request, uri=request.uri.replace('swapi.dev', 'mirror.example.com'))

        pipeline = self.make(ok(b'{}'), cache=cache, request_adapter=mirror)

        self.assertEqual({'a': 1}, pipeline.execute(SHIPS).result(timeout=5).payload)
        self.assertEqual([], self.transport.requests)

    def test_adapter_failure_is_an_invalid_request(self):
        def broken(request):
            raise RuntimeError('no signing key')

        pipeline = self.make(ok(b'{}'), request_adapter=broken)

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertIs(NetworkErrorKind.INVALID_REQUEST, error.kind)
        self.assertIsInstance(error.cause, RuntimeError)
        self.assertEqual([], self.transport.requests)

    def test_adapter_network_error_is_kept(self):
        def refuse(request):
            raise NetworkError(NetworkErrorKind.NO_INTERNET_CONNECTION)

        pipeline = self.make(ok(b'{}'), request_adapter=refuse)

        self.assertIs(NetworkErrorKind.NO_INTERNET_CONNECTION, self.error_of(pipeline.execute(SHIPS)).kind)
        self.assertEqual([], self.transport.requests)

    def test_adapter_must_return_a_request(self):
        pipeline = self.make(ok(b'{}'), request_adapter=lambda request: None)

        self.assertIs(NetworkErrorKind.INVALID_REQUEST, self.error_of(pipeline.execute(SHIPS)).kind)

    def test_download_is_adapted(self):
        seen = []

        def record(request):
            seen.append(request.uri)
            return request

        pipeline = self.make(ok(b'data'), request_adapter=record)

        with TemporaryDirectory() as directory:
            pipeline.download(SHIPS, Path(directory) / 'ships.json').result(timeout=5)

        self.assertEqual(['https://swapi.dev/api/starships/'], seen)


class TestCollaborators(PipelineTestCase):
    def test_unreachable_network_is_never_dispatched(self):
        pipeline = self.make(ok(b'{}'), connectivity=ConnectivitySignal(reachable=False),
                             retry_strategy=DefaultRetryStrategy(max_retries=0))

        self.assertIs(NetworkErrorKind.NO_INTERNET_CONNECTION, self.error_of(pipeline.execute(SHIPS)).kind)
        self.assertEqual([], self.transport.requests)

    def test_network_logger_sees_every_attempt(self):
        network_logger = mock(NetworkLogger)
        pipeline = self.make(failed(500), ok(b'{}'), network_logger=network_logger,
                             retry_strategy=FunctionRetryStrategy(1, lambda error, count: RETRY))

        pipeline.execute(SHIPS).result(timeout=5)

        verify(network_logger, times=2).log_request(...)
        verify(network_logger, times=2).log_response(...)

    def test_closed_pipeline_fails_calls(self):
        pipeline = self.make(ok(b'{}'))
        pipeline.close()

        error = self.error_of(pipeline.execute(SHIPS))

        self.assertIs(NetworkErrorKind.UNKNOWN, error.kind)
        self.assertTrue(self.transport.closed)

    def test_context_manager_closes(self):
        with self.make(ok(b'{}')) as pipeline:
            pipeline.execute(SHIPS).result(timeout=5)

        self.assertTrue(self.transport.closed)


class TestDownload(PipelineTestCase):
    def test_writes_the_body(self):
        pipeline = self.make(ok(b'\x00\x01binary'))
        with TemporaryDirectory() as directory:
            destination = Path(directory) / 'nested' / 'file.bin'

            result = pipeline.download(SHIPS, destination).result(timeout=5)

            self.assertEqual(destination, result)
            self.assertEqual(b'\x00\x01binary', destination.read_bytes())

    def test_empty_body_is_no_data(self):
        pipeline = self.make(ok(b''))
        with TemporaryDirectory() as directory:
            error = self.error_of(pipeline.download(SHIPS, Path(directory) / 'file.bin'))

        self.assertIs(NetworkErrorKind.NO_DATA, error.kind)

    def test_unwritable_destination_is_a_download_failure(self):
        pipeline = self.make(ok(b'data'))
        with TemporaryDirectory() as directory:
            blocker = Path(directory) / 'blocker'
            blocker.write_bytes(b'')

            error = self.error_of(pipeline.download(SHIPS, blocker / 'file.bin'))

        self.assertIs(NetworkErrorKind.DOWNLOAD_FAILED, error.kind)

    def test_error_status(self):
        pipeline = self.make(failed(404))
        with TemporaryDirectory() as directory:
            error = self.error_of(pipeline.download(SHIPS, Path(directory) / 'file.bin'))

        self.assertIs(NetworkErrorKind.CLIENT_ERROR, error.kind)


@ddt
class TestHelpers(TestCase):
    @data((200, None), (204, None), (299, None), (300, NetworkErrorKind.NETWORK_ERROR),
          (400, NetworkErrorKind.CLIENT_ERROR), (499, NetworkErrorKind.CLIENT_ERROR),
          (500, NetworkErrorKind.SERVER_ERROR), (599, NetworkErrorKind.SERVER_ERROR),
          (600, NetworkErrorKind.NETWORK_ERROR), (100, NetworkErrorKind.NETWORK_ERROR))
    @unpack
    def test_classify_status(self, status, kind):
        self.assertEqual(kind, classify_status(status))

    def test_compose_url_joins_and_encodes(self):
        service = ServiceDescription('https://api.example.com', '/a b/ü?x=1&y=%20')

        self.assertEqual('https://api.example.com/a%20b/%C3%BC?x=1&y=%20', compose_url(service))

    def test_compose_url_appends_encoded_query(self):
        service = ServiceDescription('https://api.example.com', '/search?sort=asc',
                                     query={'q': 'x wing', 'tags': ['a', 'b'], 'skip': None, 'name': 'ü'})

        self.assertEqual('https://api.example.com/search?sort=asc&q=x+wing&tags=a&tags=b&name=%C3%BC',
                         compose_url(service))

    @data('http://api.example.com:notaport', 'mailto:luke@example.com', 'https:///path')
    def test_compose_url_rejects(self, base_url):
        with self.assertRaises(NetworkError) as context:
            compose_url(ServiceDescription(base_url))

        self.assertIs(NetworkErrorKind.INVALID_URL, context.exception.kind)


class TestCreate(TestCase):
    def test_defaults(self):
        pipeline = create()
        self.addCleanup(pipeline.close)

        self.assertIsInstance(pipeline.transport, RequestsTransport)
        self.assertIsInstance(pipeline.cache, ExpiringCache)
        self.assertIsInstance(pipeline.retry_strategy, DefaultRetryStrategy)

    def test_without_cache(self):
        pipeline = create(cache=False)
        self.addCleanup(pipeline.close)

        self.assertIsNone(pipeline.cache)

    def test_pins_require_a_directory(self):
        with self.assertRaises(ValueError):
            create(pinned_certificates={'api.example.com': ['api']})

    def test_request_adapter_is_passed_on(self):
        adapter = lambda request: request
        pipeline = create(request_adapter=adapter)
        self.addCleanup(pipeline.close)

        self.assertIs(adapter, pipeline.request_adapter)
