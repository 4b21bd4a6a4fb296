"""rascal CLI - run HTTP requests described in JSON files."""

import logging
import os
import sys

import click

from rascal import __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
LOG_ENV_VAR = "RASCAL_LOG"

TOOL_HELP = """\
rascal — run HTTP requests described in JSON files.

\b
REQUEST FILE
────────────
  {
    "version": "HTTP/1.1",
    "method": "POST",
    "url": {"host": "example.com", "path": "/api/users", "params": {"q": "x"}},
    "headers": {"Content-Type": "application/json"},
    "body": {"json": {"name": "{{ arg_name }}"}},
    "auth": {"type": "Bearer", "token": "{{ env_API_TOKEN }}"}
  }

  url is either a string or an object with protocol (default https),
  host, port, path, params and fragment.
  body takes json, raw or filepath; json wins over raw, raw over filepath.
  auth is {"type": "Basic", "username", "password"} or
  {"type": "Bearer", "token"} and replaces any authorization header.
  Supported methods: GET, HEAD, POST, PUT.

\b
PLACEHOLDERS
────────────
  {{ env_VAR }}      Environment variable (plus env_file from config)
  {{ arg_key }}      Value from -k key=value
  {{ uuid }}         Random UUID v4
  {{ timestamp }}    Unix timestamp (seconds)
  {{ timestamp_ms }} Unix timestamp (milliseconds)
  {{ date }}         ISO 8601 datetime string

\b
COOKIES
───────
  Cookies set by responses are stored in <tmpdir>/rascal.sqlite3 and sent
  again to the same host on later runs. Override with --cookie-db or
  cookie_db in the config; list them with `rascal cookies HOST [PATH]`.

\b
CONFIG FILE (.rascal.yaml)
──────────────────────────
  Resolution order:
    1. -c/--config flag
    2. .rascal.yaml / .rascal.yml / rascal.yaml / rascal.yml in CWD
    3. ~/.rascal/config.yaml

  \b
  defaults:
    cookie_db: cookies.sqlite3      # relative to the config file
    env_file: .env
    timeout: 30                     # seconds, none by default
    full_response: false
    pretty_print: true
    log_level: WARNING
"""


def _parse_kwargs(ctx, param, values):
    """Parse repeated KEY=VALUE options into a dict."""
    kwargs = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"invalid KEY=value: no `=` found in `{item}`")
        k, v = item.split("=", 1)
        kwargs[k] = v
    return kwargs


def _configure_logging(level_name: str | None) -> None:
    level = getattr(logging, (level_name or "WARNING").upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("rascal").setLevel(level)


def _load_settings(config_file, log_level):
    """Load config and set up logging. Returns (config, defaults)."""
    from rascal.core import load_config, resolve_config_path

    config = load_config(resolve_config_path(config_file))
    defaults = config.get("defaults", {})
    _configure_logging(log_level or defaults.get("log_level") or os.environ.get(LOG_ENV_VAR))
    return config, defaults


def _open_store(path):
    """Open the cookie store, or return None if it cannot be opened."""
    from rascal.cookies import CookieStore
    from rascal.errors import CookiePersistError

    try:
        return CookieStore(path)
    except CookiePersistError as e:
        logger.error("cookies disabled for this run, error=%s", e)
        return None


@click.group(help=TOOL_HELP, context_settings={"max_content_width": 88})
@click.version_option(version=__version__)
def main():
    pass


@main.command("exec")
@click.argument("input_file")
@click.option("-o", "--output-file", default=None, help="Also write the output to this file.")
@click.option(
    "-k",
    "--kwargs",
    "kwargs",
    multiple=True,
    callback=_parse_kwargs,
    metavar="KEY=VALUE",
    help="Template argument, available as {{ arg_KEY }}. Repeatable.",
)
@click.option(
    "-f",
    "--full-response",
    is_flag=True,
    default=False,
    help="Include the status line and response headers.",
)
@click.option(
    "-p",
    "--pretty-print",
    is_flag=True,
    default=False,
    help="Pretty-print the body according to its content type.",
)
@click.option("-c", "--config", "config_file", default=None, help="Config file path.")
@click.option("--cookie-db", default=None, help="Cookie store path.")
@click.option(
    "--no-cookies",
    is_flag=True,
    default=False,
    help="Neither send stored cookies nor store new ones.",
)
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds.")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
def exec_cmd(
    input_file,
    output_file,
    kwargs,
    full_response,
    pretty_print,
    config_file,
    cookie_db,
    no_cookies,
    timeout,
    log_level,
):
    """Execute the request described in INPUT_FILE."""
    from rascal.cookies import cookies_for_url, persist_cookies
    from rascal.core import config_relative, load_env, load_request, resolve_cookie_db
    from rascal.errors import RascalError
    from rascal.executor import send
    from rascal.formatters import format_output
    from rascal.models import to_wire_url

    config, defaults = _load_settings(config_file, log_level)
    env = load_env(config_relative(defaults.get("env_file"), config))

    try:
        spec = load_request(input_file, kwargs, env)

        store = None if no_cookies else _open_store(resolve_cookie_db(cookie_db, config))
        try:
            cookies = cookies_for_url(store, to_wire_url(spec)) if store else None
            response = send(spec, cookies=cookies, timeout=timeout or defaults.get("timeout"))
            if store:
                persist_cookies(response, store)
        finally:
            if store:
                store.close()

        output = format_output(
            response,
            full_response=full_response or bool(defaults.get("full_response")),
            pretty_print=pretty_print or bool(defaults.get("pretty_print")),
            output_file=output_file,
        )
    except RascalError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    click.echo(output)


@main.command("cookies")
@click.argument("host")
@click.argument("path", default="/")
@click.option("-c", "--config", "config_file", default=None, help="Config file path.")
@click.option("--cookie-db", default=None, help="Cookie store path.")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
def cookies_cmd(host, path, config_file, cookie_db, log_level):
    """List stored cookies sent to HOST for PATH."""
    from rascal.cookies import fetch_cookies
    from rascal.core import resolve_cookie_db

    config, _ = _load_settings(config_file, log_level)
    db_path = resolve_cookie_db(cookie_db, config)
    store = _open_store(db_path)
    if store is None:
        click.echo(f"ERROR: unable to open cookie store {db_path}", err=True)
        sys.exit(1)

    with store:
        found = fetch_cookies(store, host, path)

    if not found:
        click.echo(f"No cookies for {host}{path} in {db_path}")
        return
    for c in found:
        parts = [f"{c.name}={c.value}", f"domain={c.domain}", f"path={c.path}"]
        if c.secure:
            parts.append("secure")
        if c.http_only:
            parts.append("httponly")
        if c.expires_at is not None:
            parts.append(f"expires={c.expires_at.isoformat()}")
        click.echo("; ".join(parts))
