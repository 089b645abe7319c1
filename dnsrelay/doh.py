"""DNS-over-HTTPS request parsing and client address detection."""

from __future__ import annotations

import base64
import binascii
import ipaddress
import logging
import re
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs

import dns.message

logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
AddrPort = tuple[IPAddress, int]

DNS_MESSAGE_CONTENT_TYPE = "application/dns-message"

# Headers that may carry the real client address, most trusted first.
REAL_IP_HEADERS = ("CF-Connecting-IP", "True-Client-IP", "X-Real-IP")
FORWARDED_FOR_HEADER = "X-Forwarded-For"

_RAW_URL_B64 = re.compile(r"[A-Za-z0-9_-]*")


class DoHRequestError(ValueError):
    """An invalid DoH request, carrying the HTTP status to answer with."""

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = HTTPStatus(status)
        super().__init__(message or self.status.phrase)


def _query_param(query: Any, name: str) -> str:
    if query is None:
        return ""
    if isinstance(query, (bytes, bytearray)):
        query = bytes(query).decode("utf-8", errors="replace")
    if isinstance(query, str):
        values = parse_qs(query, keep_blank_values=True).get(name)
        return values[0] if values else ""
    value = query.get(name)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return value[0] if value else ""
    return value


def _decode_raw_url_b64(text: str) -> bytes:
    if not _RAW_URL_B64.fullmatch(text) or len(text) % 4 == 1:
        raise ValueError("illegal base64 data")
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except binascii.Error as err:
        raise ValueError(f"illegal base64 data: {err}") from err


def parse_doh_request(
    method: str,
    query: Any = None,
    content_type: str | None = None,
    body: Any = b"",
) -> dns.message.Message:
    """Parse the DNS request carried by a DoH HTTP request.

    query is the URL query string or a mapping of its parameters.  Raises
    DoHRequestError with status 400 for missing or malformed data, 415 for a
    POST of another media type and 405 for methods other than GET and POST.
    """
    if method == "GET":
        param = _query_param(query, "dns")
        try:
            buf = _decode_raw_url_b64(param)
        except ValueError as err:
            logger.debug("parsing dns request from http get param %r: %s", param, err)
            raise DoHRequestError(HTTPStatus.BAD_REQUEST) from err
        if not buf:
            logger.debug("empty dns request in http get param %r", param)
            raise DoHRequestError(HTTPStatus.BAD_REQUEST)
    elif method == "POST":
        if content_type != DNS_MESSAGE_CONTENT_TYPE:
            logger.debug("unsupported media type %r", content_type)
            raise DoHRequestError(HTTPStatus.UNSUPPORTED_MEDIA_TYPE)
        try:
            buf = body.read() if hasattr(body, "read") else bytes(body or b"")
        except OSError as err:
            logger.debug("reading http request body: %s", err)
            raise DoHRequestError(HTTPStatus.BAD_REQUEST) from err
    else:
        logger.debug("bad http method %r", method)
        raise DoHRequestError(HTTPStatus.METHOD_NOT_ALLOWED)

    try:
        return dns.message.from_wire(buf, ignore_trailing=True)
    except Exception as err:  # noqa: BLE001 - any parse failure is a bad request
        logger.debug("unpacking http msg: %s", err)
        raise DoHRequestError(HTTPStatus.BAD_REQUEST) from err


def _header(headers: Any, name: str) -> str:
    if headers is None:
        return ""
    items = headers.items() if isinstance(headers, Mapping) or hasattr(headers, "items") else headers
    wanted = name.lower()
    for key, value in items:
        if key.lower() != wanted:
            continue
        if isinstance(value, (list, tuple)):
            return value[0] if value else ""
        return value
    return ""


def real_ip_from_headers(headers: Any) -> IPAddress:
    """Return the client address named by the first suitable proxy header.

    Raises ValueError if no header holds a valid address.
    """
    for name in REAL_IP_HEADERS:
        try:
            return ipaddress.ip_address(_header(headers, name).strip())
        except ValueError:
            continue

    xff = _header(headers, FORWARDED_FOR_HEADER)
    first_comma = xff.find(",")
    if first_comma > 0:
        xff = xff[:first_comma]
    return ipaddress.ip_address(xff.strip())


def _parse_addr_port(text: str) -> AddrPort:
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"invalid address and port {text!r}")
        port = rest[1:]
        ip = ipaddress.ip_address(host)
        if ip.version != 6:
            raise ValueError(f"unexpected brackets around ipv4 address in {text!r}")
    else:
        host, sep, port = text.rpartition(":")
        if not sep or ":" in host:
            raise ValueError(f"invalid address and port {text!r}")
        ip = ipaddress.ip_address(host)

    if not (port.isascii() and port.isdigit()) or int(port) > 65535:
        raise ValueError(f"invalid port {port!r} in {text!r}")
    return ip, int(port)


def remote_addr(remote: str, headers: Any = None) -> tuple[AddrPort, AddrPort | None]:
    """Return the client's address and the address of the proxy it came through.

    remote is the "host:port" address of the peer.  If the headers name a
    client address, it is returned with port 0 and the peer is the proxy;
    otherwise the peer is the client and the proxy is None.
    """
    host = _parse_addr_port(remote)

    try:
        real_ip = real_ip_from_headers(headers)
    except ValueError as err:
        logger.debug("getting ip address from http request: %s", err)
        return host, None

    logger.debug("using ip address %s from http request", real_ip)
    return (real_ip, 0), host


def matches_userinfo(user: str, password: str, req_user: str, req_password: str) -> bool:
    """Report whether the request credentials match the configured ones."""
    return req_user == user and req_password == password