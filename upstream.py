"""Upstream Azure OpenAI API communication."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from config import AppConfig

log = logging.getLogger("azure_proxy")

# Statuses that never carry a body.
_BODYLESS_STATUSES = frozenset({204, 304})


class UpstreamError(Exception):
    """Failure while talking to the Azure deployment."""


class UpstreamBodyMissing(UpstreamError):
    """The upstream response has no body to relay."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Upstream response body is missing (status={status_code} url={url})")
        self.status_code = status_code
        self.url = url


class UpstreamTransportError(UpstreamError):
    """The upstream request could not be completed (connect error, timeout, ...)."""


def build_upstream_url(
    resource_name: str,
    domain: str,
    api_version: str,
    deployment: str,
    operation: str,
) -> str:
    """
    Build the deployment URL.

    An empty deployment is kept as-is; Azure answers such a request with its own error.
    """
    return (
        f"https://{resource_name}.{domain}/openai/deployments/"
        f"{deployment}/{operation}?api-version={api_version}"
    )


def response_has_body(method: str, status_code: int) -> bool:
    """Check whether an upstream response is expected to carry a body."""
    if method.upper() == "HEAD":
        return False
    if 100 <= status_code < 200:
        return False
    return status_code not in _BODYLESS_STATUSES


@dataclass(frozen=True)
class UpstreamRequest:
    """Outbound request descriptor."""

    method: str
    url: str
    headers: Dict[str, str]
    content: Optional[bytes]


class UpstreamClient:
    """Handle communication with Azure OpenAI deployments."""

    def __init__(
        self,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def get_headers(self) -> Dict[str, str]:
        """Get headers for the Azure API."""
        return {
            "Content-Type": "application/json",
            "api-key": self._config.azure_api_key or "",
            "User-Agent": self._config.user_agent,
        }

    def build_request(
        self,
        method: str,
        deployment: str,
        operation: str,
        body: Any = None,
    ) -> UpstreamRequest:
        """
        Build the outbound request for a deployment operation.

        The inbound JSON body is re-serialized without touching its contents;
        no body means no content.
        """
        url = build_upstream_url(
            self._config.resource_name,
            self._config.azure_domain,
            self._config.api_version,
            deployment,
            operation,
        )
        content = None
        if body is not None:
            content = json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        return UpstreamRequest(method=method, url=url, headers=self.get_headers(), content=content)

    def get_timeout(self) -> httpx.Timeout:
        """No timeout unless REQUEST_TIMEOUT_S is set; streamed reads are never timed."""
        t = self._config.request_timeout_s
        if t <= 0:
            return httpx.Timeout(None)
        return httpx.Timeout(connect=t, write=t, pool=t, read=None)

    def open_client(self) -> httpx.AsyncClient:
        """Open a client for one proxied request. The caller closes it."""
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self.get_timeout(), transport=self._transport)
        return httpx.AsyncClient(timeout=self.get_timeout())

    async def send(
        self,
        client: httpx.AsyncClient,
        upstream_request: UpstreamRequest,
        req_id: str = "-",
    ) -> httpx.Response:
        """
        Send the request and return the response with its body still unread.

        Raises UpstreamTransportError when the request cannot be completed.
        """
        t0 = time.time()
        try:
            req = client.build_request(
                upstream_request.method,
                upstream_request.url,
                headers=upstream_request.headers,
                content=upstream_request.content,
            )
            resp = await client.send(req, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.error(
                "Upstream request failed req_id=%s url=%s err=%s: %s",
                req_id,
                upstream_request.url,
                type(e).__name__,
                e,
            )
            raise UpstreamTransportError(f"{type(e).__name__}: {e}") from e

        dt = (time.time() - t0) * 1000
        log.info(
            "Upstream req_id=%s %s %s status=%s ms=%.1f",
            req_id,
            upstream_request.method,
            upstream_request.url,
            resp.status_code,
            dt,
        )
        if resp.status_code >= 400:
            log.warning(
                "Upstream error req_id=%s status=%s content-type=%s",
                req_id,
                resp.status_code,
                resp.headers.get("content-type", ""),
            )
        return resp
