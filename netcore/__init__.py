from .cache import Cache, ExpiringCache
from .connectivity import ConnectivitySignal
from .decoder import ResponseDecoder
from .errors import NetworkError, NetworkErrorKind, PinningConfigurationError
from .log import LogPrivacy, NetworkLogger
from .model import (CachePolicy, FileUpload, HTTPMethod, NO_CACHE, Request, Response, ResultEnvelope,
                    ServiceDescription, Shape)
from .pinning import TrustDecision, TrustValidator
from .pipeline import Pipeline, PipelineConfig, create
from .retry import (DO_NOT_RETRY, RETRY, DefaultRetryStrategy, ExponentialBackoff, FunctionRetryStrategy,
                    RetryStrategy, RetryWithDelay, RetryWithExponentialBackoff)
from .session import Session, SessionStore
from .transport import RequestsTransport, Transport, TransportError
