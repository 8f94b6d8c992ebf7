"""One-shot HTTP transport on top of httpx.

The transport does not retry and does not interpret status codes; that is
the caller's job. Network-level failures are normalized to
OssConnectionError so the retry layer has a single type to look at.
"""

import logging
from typing import Iterable, Mapping, Optional, Union

import httpx
from h11 import LocalProtocolError as H11LocalProtocolError

from osscmd.errors import OssConnectionError
from osscmd.models import HttpResult

logger = logging.getLogger(__name__)

Body = Union[bytes, Iterable[bytes]]

# Methods that always carry a body (possibly empty) on the wire
BODY_METHODS = {"PUT", "POST"}


def flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    """Lower-case header names; the first value of a repeated header wins."""
    flat: dict[str, str] = {}
    for name, value in headers.multi_items():
        flat.setdefault(name.lower(), value)
    return flat


class Transport:
    """Executes a single signed request and drains the response."""

    def __init__(self, http_client: httpx.Client):
        self.http_client = http_client

    def execute(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: Optional[Body] = None,
    ) -> HttpResult:
        """Send one request.

        Args:
            url: Fully-qualified request URL
            method: HTTP verb
            headers: Request headers, including Authorization
            body: Request body as bytes or an iterator of byte chunks

        Returns:
            HttpResult with status code, flattened headers and full body

        Raises:
            OssConnectionError: If the request could not be completed
        """
        content = body
        if content is None and method.upper() in BODY_METHODS:
            content = b""

        logger.debug("%s %s", method, url)
        try:
            response = self.http_client.request(
                method,
                url,
                headers=dict(headers),
                content=content,
            )
            payload = response.read()
        except (httpx.TransportError, H11LocalProtocolError) as e:
            raise OssConnectionError(f"{method} {url} failed: {e}") from e

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return HttpResult(
            status_code=response.status_code,
            headers=flatten_headers(response.headers),
            body=payload,
        )

    def close(self) -> None:
        self.http_client.close()
