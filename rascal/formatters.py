"""rascal formatters - render a response for the terminal or a file."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from rascal.errors import FormatWarning, OutputWriteError

logger = logging.getLogger(__name__)

JSON_MIME = ("application", "json")


def parse_mime(content_type: str | None) -> tuple[str, str]:
    """Split a Content-Type value into (type, subtype), lower-cased.

    Parameters such as charset are dropped. Raises FormatWarning when the
    header is missing or is not of the form type/subtype.
    """
    if content_type is None:
        raise FormatWarning("missing content-type header")
    essence = content_type.split(";", 1)[0].strip().lower()
    type_, sep, subtype = essence.partition("/")
    if not sep or not type_ or not subtype or any(c.isspace() or c == "/" for c in subtype):
        raise FormatWarning(f"unable to parse content-type {content_type!r}")
    return type_, subtype


def pretty_print_str(body: str, content_type: str | None) -> str:
    """Pretty-print body according to its content type.

    Only application/json is reformatted (2-space indent). Other types come
    back unchanged with a warning. A missing or malformed content type, or a
    body that is not valid JSON, raises FormatWarning.
    """
    mime = parse_mime(content_type)
    if mime == JSON_MIME:
        try:
            value = json.loads(body)
        except ValueError as e:
            raise FormatWarning(f"invalid json body: {e}") from e
        return json.dumps(value, indent=2, ensure_ascii=False)

    logger.warning("unable to pretty-print mime_type: (%s, %s)", *mime)
    return body


def _header_text(value) -> str:
    """Return a header value as text, or raise ValueError if it is not ASCII."""
    if isinstance(value, bytes):
        return value.decode("ascii")
    value.encode("ascii")
    return value


def _body_text(response) -> str:
    """Decode the body, as UTF-8 unless the content type names a charset."""
    content_type = response.headers.get("content-type") or ""
    if "charset=" in content_type.lower():
        return response.text
    return (response.content or b"").decode("utf-8", errors="replace")


def format_output(
    response,  # requests.Response
    full_response: bool = False,
    pretty_print: bool = False,
    output_file: str | Path | None = None,
) -> str:
    """Assemble the text shown for a response.

    - full_response adds a status line and one "key: value" line per header
    - pretty_print reformats the body by content type, falling back to the
      raw body with a warning
    - output_file, when given, receives the whole string; failing to write
      raises OutputWriteError

    The assembled string is always returned.
    """
    lines: list[str] = []

    if full_response:
        status = " ".join(p for p in (str(response.status_code), response.reason or "") if p)
        lines.append(f"status: {status}\n")
        for key, value in response.headers.items():
            try:
                lines.append(f"{key}: {_header_text(value)}\n")
            except ValueError as e:
                logger.error("Unable to convert header=%s to string, error=%s", key, e)

    raw_body = _body_text(response)
    if pretty_print:
        try:
            lines.append(pretty_print_str(raw_body, response.headers.get("content-type")))
        except FormatWarning as e:
            logger.warning("unable to pretty-print response, error=%s", e)
            lines.append(raw_body)
    else:
        lines.append(raw_body)

    output = "".join(lines)

    if output_file is not None:
        try:
            Path(output_file).write_text(output, encoding="utf-8")
        except OSError as e:
            raise OutputWriteError(f"failed to write response to={output_file}: {e}") from e

    return output
