from __future__ import annotations

import urllib.parse
import urllib.request
from pathlib import Path

from follow.config import ConnectionConfig
from follow.errors import ConfigurationError
from follow.resources.base import ResourceHandle
from follow.resources.http import HttpResource
from follow.resources.local import LocalFileResource
from follow.utils.logging import get_logger

logger = get_logger("follow.resources.registry")

HTTP_SCHEMES = frozenset({"http", "https"})


def resolve_resource(identifier: str, connection: ConnectionConfig | None = None) -> ResourceHandle:
    """Turn a path or URL into the matching resource handle.

    Plain paths and ``file:`` URLs become local files; ``http``/``https`` URLs
    become HTTP resources. Anything else is a configuration error.
    """
    text = (identifier or "").strip()
    if not text:
        raise ConfigurationError('Source missing - specify "file" or "url"')

    parts = urllib.parse.urlsplit(text)
    scheme = parts.scheme.lower()

    # Single-letter schemes are Windows drive letters.
    if len(scheme) <= 1:
        return LocalFileResource(path=Path(text).expanduser())

    if scheme == "file":
        if parts.netloc not in ("", "localhost"):
            raise ConfigurationError(f"Remote file URLs are not supported: {text}")
        return LocalFileResource(path=Path(urllib.request.url2pathname(parts.path)))

    if scheme in HTTP_SCHEMES:
        if not parts.hostname:
            raise ConfigurationError(f"Malformed URL (no host): {text}")
        try:
            parts.port
        except ValueError as exc:
            raise ConfigurationError(f"Malformed URL: {text}: {exc}") from exc
        connection = connection or ConnectionConfig()
        if connection.chunk_length != -1 or connection.content_length != -1:
            logger.debug(
                "chunk_length/content_length only shape request bodies; HEAD/GET send none"
            )
        return HttpResource(url=text, connection=connection)

    raise ConfigurationError(f"Unsupported URL scheme {scheme!r}: {text}")
