"""rascal executor - HTTP request execution."""

import logging
from typing import Any, Iterable

import requests
from requests.cookies import RequestsCookieJar

from rascal.errors import TransportError, UnsupportedMethodError
from rascal.models import HttpMethod, RequestSpec, resolve_body, to_header_map, to_wire_url

logger = logging.getLogger(__name__)

BODYLESS_METHODS = (HttpMethod.GET, HttpMethod.HEAD)
BODY_METHODS = (HttpMethod.POST, HttpMethod.PUT)


def _cookie_jar(cookies: Iterable | None) -> RequestsCookieJar | None:
    if not cookies:
        return None
    jar = RequestsCookieJar()
    for c in cookies:
        jar.set_cookie(c.to_http_cookie())
    return jar


def send(
    spec: RequestSpec,
    cookies: Iterable | None = None,
    timeout: float | None = None,
) -> requests.Response:
    """Send the request described by spec and return the raw response.

    - GET and HEAD never carry a body
    - POST and PUT carry the resolved body when the spec has one
    - Any other method raises UnsupportedMethodError before touching the network
    - cookies are stored cookies (see rascal.cookies) to send along
    - No retries; no timeout unless one is given
    """
    if spec.method not in BODYLESS_METHODS + BODY_METHODS:
        raise UnsupportedMethodError(spec.method.value)

    url = to_wire_url(spec)
    kwargs: dict[str, Any] = {
        "method": spec.method.value,
        "url": url,
        "headers": to_header_map(spec),
        "timeout": timeout,
        "allow_redirects": True,
    }

    if spec.method in BODY_METHODS and spec.body is not None:
        kwargs["data"] = resolve_body(spec).encode("utf-8")

    jar = _cookie_jar(cookies)
    if jar is not None:
        kwargs["cookies"] = jar

    logger.debug("sending %s %s", spec.method.value, url)
    try:
        return requests.request(**kwargs)
    except requests.exceptions.Timeout as e:
        raise TransportError(f"Request timed out after {timeout}s") from e
    except requests.exceptions.ConnectionError as e:
        raise TransportError(f"Connection error: {e}") from e
    except (requests.exceptions.RequestException, UnicodeError) as e:
        raise TransportError(f"Request failed: {e}") from e
