"""
Helpers for building common request headers.

Each helper returns a single-entry mapping, so the results can be merged into a
`ServiceDescription`'s headers or into the pipeline's shared defaults.
"""

import base64
from typing import Dict, Mapping

from requests.structures import CaseInsensitiveDict


def accept(value: str) -> Dict[str, str]:
    return {'Accept': value}


def accept_language(value: str) -> Dict[str, str]:
    return {'Accept-Language': value}


def content_type(value: str) -> Dict[str, str]:
    return {'Content-Type': value}


def user_agent(value: str) -> Dict[str, str]:
    return {'User-Agent': value}


def authorization(value: str) -> Dict[str, str]:
    return {'Authorization': value}


def basic_authorization(username: str, password: str) -> Dict[str, str]:
    credential = base64.b64encode('{}:{}'.format(username, password).encode('utf-8')).decode('ascii')
    return authorization('Basic {}'.format(credential))


def bearer_authorization(token: str) -> Dict[str, str]:
    return authorization('Bearer {}'.format(token))


def compose(*layers: Mapping[str, str]) -> CaseInsensitiveDict:
    """
    Merge header layers left to right.

    Later layers win on a case-insensitive name clash. The position of a name is
    the position at which it first appeared.
    """
    result = CaseInsensitiveDict()
    for layer in layers:
        if layer:
            result.update(layer)
    return result
