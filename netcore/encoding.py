"""
Request body encoding.

Structured bodies are first converted into a plain tree of dicts, lists, strings,
numbers, booleans and `None`, then rendered as JSON. Objects can take part by
defining `to_json_value()`, which must return such a tree (or something that
converts into one). Dataclasses and enums are converted automatically.
"""

import dataclasses
from enum import Enum
import json
from typing import Any, Mapping, Optional, Tuple
import uuid

from urllib3 import encode_multipart_formdata

from .model import FileUpload


JSON_CONTENT_TYPE = 'application/json'


class UnserializableBody(TypeError):
    pass


def to_json_tree(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    to_json_value = getattr(value, 'to_json_value', None)
    if callable(to_json_value):
        return to_json_tree(to_json_value())
    if isinstance(value, Enum):
        return to_json_tree(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json_tree(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(key): to_json_tree(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_tree(item) for item in value]
    raise UnserializableBody('Cannot serialize {} into a request body'.format(type(value).__name__))


def encode_json_body(value: Any) -> Optional[bytes]:
    """
    Render a structured body as a JSON object.

    A string is taken to be JSON text already and must hold an object; the
    empty string means no body at all.

    @raise UnserializableBody
      If the value does not convert into a JSON object.
    """
    if isinstance(value, str):
        if not value:
            return None
        try:
            value = json.loads(value)
        except ValueError as e:
            raise UnserializableBody('Body string is not JSON') from e

    tree = to_json_tree(value)
    if not isinstance(tree, dict):
        raise UnserializableBody('A request body must be a JSON object, got {}'.format(type(tree).__name__))
    try:
        return json.dumps(tree, ensure_ascii=False, allow_nan=False).encode('utf-8')
    except ValueError as e:
        raise UnserializableBody(str(e)) from e


def new_boundary() -> str:
    return 'Boundary-{}'.format(str(uuid.uuid4()).upper())


def encode_multipart(upload: FileUpload, boundary: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Render an upload as a multipart/form-data body.

    Every form parameter becomes one part, followed by a terminal part named
    "file" that carries the upload's filename and content type.

    @return
      The body and the matching Content-Type header value.
    """
    fields = [(name, str(value)) for name, value in upload.parameters.items()]
    fields.append(('file', (upload.filename, upload.data, upload.mime_type)))
    return encode_multipart_formdata(fields, boundary=boundary or new_boundary())
