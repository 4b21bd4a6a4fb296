"""rascal models - the JSON request spec and how it resolves to wire values."""

import base64
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rascal.errors import SpecError

logger = logging.getLogger(__name__)

AUTHORIZATION = "authorization"
DEFAULT_PROTOCOL = "https"


class HttpVersion(str, Enum):
    V0_9 = "HTTP/0.9"
    V1_0 = "HTTP/1.0"
    V1_1 = "HTTP/1.1"
    V2 = "HTTP/2.0"
    V3 = "HTTP/3.0"


class HttpMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"


class StructuredUrl(BaseModel):
    """URL given as discrete parts instead of a single string."""

    model_config = ConfigDict(frozen=True)

    protocol: str | None = None
    host: str
    port: int | None = Field(default=None, ge=0, le=65535)
    path: str | None = None
    params: dict[str, str] | None = None
    fragment: str | None = None

    def render(self) -> str:
        """Join the parts as scheme://host[:port][path][?k=v&...][#fragment].

        Query parameters follow dict order; callers must not rely on it.
        """
        url = f"{self.protocol or DEFAULT_PROTOCOL}://{self.host}"
        if self.port is not None:
            url += f":{self.port}"
        if self.path is not None:
            url += self.path
        if self.params is not None:
            url += "?" + "&".join(f"{k}={v}" for k, v in self.params.items())
        if self.fragment is not None:
            url += f"#{self.fragment}"
        return url


class BasicAuth(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["Basic"] = "Basic"
    username: str
    password: str


class BearerAuth(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["Bearer"] = "Bearer"
    token: str


Auth = Annotated[Union[BasicAuth, BearerAuth], Field(discriminator="type")]


def generate_auth_header(auth: BasicAuth | BearerAuth) -> str:
    """Return the Authorization header value for an auth block."""
    if isinstance(auth, BasicAuth):
        credentials = base64.b64encode(f"{auth.username}:{auth.password}".encode()).decode()
        return f"Basic {credentials}"
    return f"Bearer {auth.token}"


class RequestBody(BaseModel):
    """Body sources, in priority order json > raw > filepath."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    raw: str | None = None
    filepath: str | None = None
    json_: Any = Field(default=None, alias="json")

    def resolve(self) -> str:
        """Return the effective body text.

        - json wins when it is not null, serialized compactly
        - then raw
        - then the contents of filepath; a read failure gives an empty body
        - nothing set gives an empty body and a warning
        """
        if self.json_ is not None:
            return json.dumps(self.json_, separators=(",", ":"), ensure_ascii=False)
        if self.raw is not None:
            return self.raw
        if self.filepath is not None:
            try:
                return Path(self.filepath).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.error("Unable to load %s, error=%s", self.filepath, e)
                return ""
        logger.warning("null request body")
        return ""


class RequestSpec(BaseModel):
    """One HTTP request as described by a rendered JSON document.

    Unknown top-level keys are ignored. The url is tried as a plain string
    first and as a StructuredUrl second; auth is picked by its "type" key.
    """

    model_config = ConfigDict(frozen=True)

    version: HttpVersion | None = None
    method: HttpMethod
    url: Union[str, StructuredUrl] = Field(union_mode="left_to_right")
    headers: dict[str, str] | None = None
    body: RequestBody | None = None
    auth: Auth | None = None


def parse_request(json_text: str) -> RequestSpec:
    """Parse rendered JSON into a RequestSpec. Raises SpecError on any mismatch."""
    try:
        return RequestSpec.model_validate_json(json_text)
    except ValidationError as e:
        raise SpecError(f"failed to parse request json: {e}") from e


def dump_request(spec: RequestSpec) -> str:
    """Serialize a RequestSpec back to the JSON shape parse_request accepts."""
    return spec.model_dump_json(by_alias=True, exclude_none=True)


def to_wire_url(spec: RequestSpec) -> str:
    if isinstance(spec.url, StructuredUrl):
        return spec.url.render()
    return spec.url


def to_header_map(spec: RequestSpec) -> dict[str, str]:
    """Build the outgoing headers.

    Supplied header names and values are lower-cased. An auth block then
    sets the authorization header, replacing any supplied one. Names or
    values that are not ASCII raise SpecError.
    """
    header_map = {k.lower(): v.lower() for k, v in (spec.headers or {}).items()}

    if spec.auth is not None:
        if AUTHORIZATION in header_map:
            logger.warning("Authorization header already exists, overwriting with auth block")
        header_map[AUTHORIZATION] = generate_auth_header(spec.auth)

    for k, v in header_map.items():
        if not (k.isascii() and v.isascii()):
            raise SpecError(f"header {k!r} is not valid ascii: {v!r}")
    return header_map


def resolve_body(spec: RequestSpec) -> str:
    if spec.body is None:
        logger.warning("null request body")
        return ""
    return spec.body.resolve()
