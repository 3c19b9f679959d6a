"""
Turns raw response text into a `ResultEnvelope`.

Without key paths, the top-level JSON value is decoded: an array becomes a
sequence payload, anything else a single payload. Text that is not JSON at all
still produces an envelope, with an empty payload and the raw text kept.

With key paths, each path is tried in order against the top-level object and
the first one that resolves to an object or an array is decoded. Segments of a
path are separated by `/` and address nested objects:

    >>> decoder = ResponseDecoder(['data/items', 'items'])
    >>> decoder.decode('{"items": [1, 2]}').payload
    [1, 2]
"""

import dataclasses
import json
import logging
from typing import Any, Callable, Iterable, Optional, Sequence, Type, Union

from .errors import NetworkError, NetworkErrorKind
from .model import ResultEnvelope, Shape


logger = logging.getLogger(__name__)

Model = Union[Type, Callable[[Any], Any], None]

KEY_PATH_SEPARATOR = '/'


def build_model(model: Model, value: Any) -> Any:
    """
    Construct `model` from one decoded JSON value.

    Dataclasses are built from the object's matching keys; unknown keys are
    ignored and missing required fields fail. Any other callable is called with
    the value. With no model, the plain JSON value is returned.
    """
    if model is None:
        return value
    if isinstance(model, type) and dataclasses.is_dataclass(model):
        if not isinstance(value, dict):
            raise TypeError('{} expects a JSON object, got {}'.format(model.__name__, type(value).__name__))
        names = {f.name for f in dataclasses.fields(model) if f.init}
        return model(**{key: item for key, item in value.items() if key in names})
    return model(value)


def split_key_path(key_path: str) -> Sequence[str]:
    return [segment for segment in key_path.split(KEY_PATH_SEPARATOR) if segment]


def locate(document: dict, key_paths: Iterable[str]) -> Optional[Any]:
    """
    Return the value at the first key path that resolves to an object or array.

    A lookup that fails at any level abandons that path only. Strings found at a
    path, including the literal "null", count as absent and the scan goes on.
    """
    for key_path in key_paths:
        node = document  # type: Any
        for segment in split_key_path(key_path):
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(segment)

        if isinstance(node, (list, dict)):
            logger.debug('Key path {!r} resolved'.format(key_path))
            return node
        if node == 'null':
            logger.debug('Key path {!r} holds the string "null"; trying the next path'.format(key_path))
        else:
            logger.debug('Key path {!r} did not resolve'.format(key_path))
    return None


def is_valid_json_object(value: Any) -> bool:
    if not isinstance(value, (list, dict)):
        return False
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError):
        return False
    return True


class ResponseDecoder:
    def __init__(self, key_paths: Optional[Sequence[str]] = None, model: Model = None) -> None:
        self.key_paths = list(key_paths or [])
        self.model = model

    def decode(self, raw_json: str, shape: Shape = Shape.AUTO,
               source_url: Optional[str] = None) -> ResultEnvelope:
        """
        @raise NetworkError
          `INVALID_JSON_ERROR` if key paths are configured and none of them
          locates an object or array; `PARSE_ERROR` if the located value cannot
          be built into the model, or its shape contradicts `shape`.
        """
        empty = ResultEnvelope(payload=None, raw_json=raw_json, source_url=source_url)
        try:
            document = json.loads(raw_json)
        except ValueError:
            logger.info('Response from {} is not JSON; returning an empty payload'.format(source_url))
            return empty

        if not self.key_paths:
            return self._decode_value(document, raw_json, shape, source_url)

        if not isinstance(document, dict):
            logger.info('Key paths are configured but the response from {} is not a JSON object'.format(source_url))
            return empty

        value = locate(document, self.key_paths)
        if value is None or not is_valid_json_object(value):
            logger.warning('None of the key paths {} located a JSON object or array'.format(self.key_paths))
            raise NetworkError(NetworkErrorKind.INVALID_JSON_ERROR)
        return self._decode_value(value, raw_json, shape, source_url)

    def _decode_value(self, value: Any, raw_json: str, shape: Shape,
                      source_url: Optional[str]) -> ResultEnvelope:
        detected = Shape.SEQUENCE if isinstance(value, list) else Shape.SINGLE
        if shape not in (Shape.AUTO, detected):
            logger.warning('Expected a {} payload but the response holds a {}'.format(shape.value, detected.value))
            raise NetworkError(NetworkErrorKind.PARSE_ERROR)

        try:
            if detected is Shape.SEQUENCE:
                payload = [build_model(self.model, item) for item in value]
            else:
                payload = build_model(self.model, value)
        except NetworkError:
            raise
        except Exception as e:
            logger.warning('Could not build {} from the response: {}'.format(self.model, e))
            raise NetworkError(NetworkErrorKind.PARSE_ERROR, cause=e) from e

        return ResultEnvelope(payload=payload, raw_json=raw_json, source_url=source_url, shape=detected)
