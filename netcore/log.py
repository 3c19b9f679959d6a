"""
Human-readable request and response records.

`NetworkLogger` is an optional collaborator of the pipeline. It writes through a
standard library logger, so where the records end up is decided by the
application's logging configuration.
"""

from enum import Enum
import logging
import shlex
from typing import Any, Optional

from .model import Request, Response


REDACTED_PRIVATE = '<private>'
REDACTED_SENSITIVE = '<sensitive>'
MAX_BODY_PREVIEW = 2048


class LogPrivacy(Enum):
    PUBLIC = 'public'
    PRIVATE = 'private'
    SENSITIVE = 'sensitive'
    AUTO = 'auto'


def curl_command(request: Request) -> str:
    """
    Render a request as a shell command that reproduces it.
    """
    parts = ['curl', '-X', request.method]
    for name, value in request.headers.items():
        parts += ['-H', '{}: {}'.format(name, value)]
    if request.body:
        parts += ['--data-binary', request.body.decode('utf-8', errors='replace')]
    parts.append(request.uri)
    return ' '.join(shlex.quote(part) for part in parts)


class NetworkLogger:
    def __init__(self, logger: Optional[logging.Logger] = None, reveal_private: bool = False) -> None:
        self.logger = logger or logging.getLogger('netcore.trace')
        self.reveal_private = reveal_private

    def redact(self, value: Any, privacy: LogPrivacy) -> str:
        if privacy is LogPrivacy.SENSITIVE:
            return REDACTED_SENSITIVE
        if privacy is LogPrivacy.PUBLIC or self.reveal_private:
            return str(value)
        return REDACTED_PRIVATE

    def log_message(self, message: str, level: int = logging.DEBUG,
                    privacy: LogPrivacy = LogPrivacy.PUBLIC) -> None:
        self.logger.log(level, '%s', self.redact(message, privacy))

    def log_request(self, request: Request) -> None:
        self.logger.info('Request %s %s', request.method, request.uri)
        self.logger.info('Headers: %s', self.redact(dict(request.headers), LogPrivacy.PRIVATE))
        if request.body:
            self.logger.info('Body: %s', self.redact(_preview(request.body), LogPrivacy.PRIVATE))
        self.logger.debug('Reproduce with: %s', self.redact(curl_command(request), LogPrivacy.PRIVATE))

    def log_response(self, url: str, response: Optional[Response] = None,
                     error: Optional[BaseException] = None) -> None:
        if error is not None:
            self.logger.error('Request to %s failed: %s', url, error)
            return
        if response is None:
            return
        self.logger.info('Response %s %s from %s', response.status, response.reason, url)
        if response.body:
            self.logger.debug('Body: %s', self.redact(_preview(response.body), LogPrivacy.PRIVATE))


def _preview(body: bytes) -> str:
    text = body[:MAX_BODY_PREVIEW].decode('utf-8', errors='replace')
    if len(body) > MAX_BODY_PREVIEW:
        text += '... ({} bytes)'.format(len(body))
    return text
