"""
Source image download for iconpost.

Guards every hop (the initial URL and each redirect target) against
non-HTTP schemes and private, loopback and link-local addresses before any
connection is made, then streams the body under a byte ceiling.
"""

import ipaddress
import socket
import time
from urllib.parse import urljoin, urlsplit

import httpx

from iconpost.config import FetchConfig
from iconpost.errors import BlockedHost, FetchTimeout, InvalidInput, TooLarge, UpstreamError
from iconpost.models import RasterBytes
from iconpost.tracer import get_tracer, trace


ALLOWED_SCHEMES = ("http", "https")
_ERROR_EXCERPT_BYTES = 512


def resolve_host(hostname):
    """Resolve a hostname to the set of addresses it points at."""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return {info[4][0] for info in infos}


def is_blocked_address(address):
    """True for loopback, link-local, private, reserved and similar ranges."""
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def parse_source_url(url):
    """
    Validate the shape of a source URL.

    Returns the ``urlsplit`` result. Raises InvalidInput for a missing or
    unparseable URL and BlockedHost for a non-HTTP scheme.
    """
    if not url or not str(url).strip():
        raise InvalidInput("Missing url parameter")
    try:
        parts = urlsplit(str(url).strip())
        hostname = parts.hostname
    except ValueError as exc:
        raise InvalidInput("Invalid URL", details=str(exc)) from exc

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise BlockedHost(details=f"scheme {parts.scheme or '(none)'!r} is not allowed")
    if not hostname:
        raise InvalidInput("Invalid URL", details="URL has no host")
    return parts


class ImageFetcher:
    """
    Downloads source images under the configured size and time budget.

    ``transport`` and ``resolver`` are injectable so callers (and tests) can
    swap the network layer without touching the guards.
    """

    def __init__(self, config=None, transport=None, resolver=None):
        self.config = config or FetchConfig()
        self._transport = transport
        self._resolver = resolver or resolve_host
        self._allowed_hosts = {h.lower() for h in self.config.allowed_hosts}

    def check_host(self, hostname):
        """
        Raise BlockedHost unless ``hostname`` is safe to connect to.

        Returns the vetted address the connection must use, or None when
        the host is allowlisted or already an IP literal.
        """
        host = hostname.lower().rstrip(".")
        if host in self._allowed_hosts:
            return None
        if host == "localhost" or host.endswith(".localhost"):
            raise BlockedHost(details=f"host {host!r} is local")

        try:
            literal = ipaddress.ip_address(host)
        except ValueError:
            literal = None
        if literal is not None:
            if is_blocked_address(str(literal)):
                raise BlockedHost(details=f"host {host!r} is a private address")
            return None

        try:
            addresses = self._resolver(host)
        except (OSError, UnicodeError) as exc:
            raise UpstreamError(502, "Could not resolve host", details=str(exc)) from exc

        if not addresses:
            raise UpstreamError(502, "Could not resolve host", details=host)
        for address in addresses:
            if is_blocked_address(address):
                raise BlockedHost(details=f"host {host!r} resolves to a private address")
        return sorted(addresses)[0]

    @trace(label="fetch_image")
    def fetch(self, url):
        """
        Download ``url`` and return RasterBytes.

        The whole download, redirects included, must finish within
        ``timeout_seconds``. Each hop connects to the address that passed
        the host check, so a second DNS answer cannot redirect it.

        Raises InvalidInput, BlockedHost, TooLarge, FetchTimeout or
        UpstreamError; nothing is retried.
        """
        tracer = get_tracer()
        headers = {"User-Agent": self.config.user_agent, "Accept": "image/*,*/*"}
        deadline = time.monotonic() + self.config.timeout_seconds

        with httpx.Client(
            transport=self._transport,
            timeout=self.config.timeout_seconds,
            follow_redirects=False,
            headers=headers,
        ) as client:
            current = url
            for _hop in range(self.config.max_redirects + 1):
                parts = parse_source_url(current)
                address = self.check_host(parts.hostname)
                self._check_deadline(deadline)

                try:
                    with self._open(client, current, parts, address) as response:
                        if response.is_redirect:
                            current = urljoin(current, response.headers["location"])
                            tracer.event("Following redirect", location=current)
                            continue

                        if response.status_code >= 400:
                            raise UpstreamError(
                                response.status_code,
                                details=self._read_excerpt(response, deadline),
                            )

                        data = self._read_capped(response, deadline)
                        content_type = response.headers.get("content-type", "application/octet-stream")
                except httpx.TimeoutException as exc:
                    raise FetchTimeout(details=f"no response within {self.config.timeout_seconds}s") from exc
                except httpx.HTTPError as exc:
                    raise UpstreamError(502, details=f"{type(exc).__name__}: {exc}") from exc

                tracer.event("Fetched image", size=len(data), content_type=content_type)
                return RasterBytes(data=data, content_type=content_type, source=current)

        raise UpstreamError(502, "Too many redirects", details=f"more than {self.config.max_redirects}")

    @staticmethod
    def _open(client, url, parts, address):
        """Stream ``url``, connecting to ``address`` when one is pinned."""
        if address is None:
            return client.stream("GET", url)

        host_header = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
        pinned = httpx.URL(url).copy_with(host=address)
        return client.stream(
            "GET", pinned,
            headers={"Host": host_header},
            extensions={"sni_hostname": parts.hostname},
        )

    def _check_deadline(self, deadline):
        if time.monotonic() > deadline:
            raise FetchTimeout(details=f"download exceeded {self.config.timeout_seconds}s")

    def _read_capped(self, response, deadline):
        """Read the body, failing as soon as it passes the byte ceiling or the deadline."""
        limit = self.config.max_bytes
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise TooLarge(details=f"declared {declared} bytes, limit {limit}")

        chunks = []
        total = 0
        for chunk in response.iter_bytes():
            self._check_deadline(deadline)
            total += len(chunk)
            if total > limit:
                raise TooLarge(details=f"body exceeds {limit} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    def _read_excerpt(self, response, deadline):
        """First few hundred bytes of an error body, as text."""
        excerpt = b""
        for chunk in response.iter_bytes():
            self._check_deadline(deadline)
            excerpt += chunk
            if len(excerpt) >= _ERROR_EXCERPT_BYTES:
                break
        return excerpt[:_ERROR_EXCERPT_BYTES].decode("utf-8", errors="replace").strip() or None
