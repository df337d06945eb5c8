"""
URL fetch tool restricted to an allowlist of hosts.
"""

import asyncio
import ipaddress
import re
import socket
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog
from bs4 import BeautifulSoup

from ..config import ALLOWED_FETCH_HOSTNAMES, TOOL_TIMEOUT_SECONDS
from ..exceptions import DisallowedHostError
from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

MAX_URL_LENGTH = 2048
MAX_RESPONSE_BYTES = 100 * 1024
MAX_CONTENT_CHARS = 4000
USER_AGENT = "Mozilla/5.0 (compatible; ToolAgent/1.0)"

Resolver = Callable[[str], Awaitable[list[str]]]


def check_fetch_target(url: str, allowed_hosts: frozenset[str] = ALLOWED_FETCH_HOSTNAMES) -> str:
    """Check a URL against the fetch policy and return its hostname.

    Raises DisallowedHostError when the URL is malformed, not http(s), or
    points at a host outside ``allowed_hosts``.
    """
    url = url.strip()
    if not url:
        raise DisallowedHostError("URL is required")
    if len(url) > MAX_URL_LENGTH:
        raise DisallowedHostError("URL is too long")

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        raise DisallowedHostError("Invalid URL format")

    if parts.scheme not in ("http", "https"):
        raise DisallowedHostError("Only HTTP/HTTPS URLs are supported")
    if not hostname:
        raise DisallowedHostError("Invalid URL format")

    hostname = hostname.lower()
    if hostname not in allowed_hosts:
        raise DisallowedHostError(
            f'Fetching from "{hostname}" is not allowed. '
            "Only specific trusted domains are permitted."
        )
    return hostname


def is_private_address(address: str) -> bool:
    """True for loopback, private, link-local, reserved and similar ranges."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return True

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or (isinstance(ip, ipaddress.IPv4Address) and ip in ipaddress.ip_network("100.64.0.0/10"))
    )


async def resolve_host(hostname: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def extract_text(html: str) -> str:
    """Strip markup from an HTML document and collapse whitespace."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "noscript"]):
        element.decompose()
    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()


class FetchUrlTool(BaseTool):
    """Fetch a page from an allowlisted host and return its text."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        allowed_hosts: frozenset[str] = ALLOWED_FETCH_HOSTNAMES,
        resolver: Resolver | None = None,
        timeout: float = TOOL_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.allowed_hosts = allowed_hosts
        self._resolve = resolver or resolve_host
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "fetch_url"

    async def execute(self, context: ToolContext, url: str, **kwargs: Any) -> ToolResult:
        url = url.strip()
        try:
            hostname = check_fetch_target(url, self.allowed_hosts)
        except DisallowedHostError as e:
            return ToolResult.fail(str(e), kind=e.kind)

        try:
            ipaddress.ip_address(hostname)
            addresses = [hostname]
        except ValueError:
            try:
                addresses = await self._resolve(hostname)
            except OSError:
                return ToolResult.fail("Failed to resolve URL hostname.")

        if not addresses or any(is_private_address(a) for a in addresses):
            logger.warning("Blocked private fetch target", hostname=hostname)
            return ToolResult.fail(
                "Fetching URLs to private or internal networks is not allowed.",
                kind="disallowed_host",
            )

        async with self.client.stream(
            "GET",
            url,
            follow_redirects=False,
            timeout=self.timeout,
        ) as response:
            if response.is_redirect:
                return ToolResult.fail(
                    f"Redirects are not followed (HTTP {response.status_code})"
                )
            response.raise_for_status()

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > MAX_RESPONSE_BYTES:
                    return ToolResult.fail("Response exceeds the 100KB size limit")
            content_type = response.headers.get("content-type", "")
            encoding = response.encoding or "utf-8"

        raw = body.decode(encoding, errors="replace")
        if "json" in content_type:
            content = raw.strip()
        else:
            content = extract_text(raw)
        content = content[:MAX_CONTENT_CHARS]

        logger.debug("Fetched URL", url=url, chars=len(content))
        return ToolResult.ok(content, data={"url": url, "content_type": content_type})
