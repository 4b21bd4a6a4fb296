"""rascal core - config loading, template rendering, request loading."""

import datetime
import os
import re
import tempfile
import time as _time
import uuid
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from rascal.errors import SpecError
from rascal.models import RequestSpec, parse_request

GLOBAL_DIR = Path.home() / ".rascal"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"
COOKIE_DB_NAME = "rascal.sqlite3"

CWD_CONFIG_CANDIDATES = [
    ".rascal.yaml",
    ".rascal.yml",
    "rascal.yaml",
    "rascal.yml",
]

ENV_PREFIX = "env_"
ARG_PREFIX = "arg_"

_PLACEHOLDER_RE = re.compile(r"\{\{(.+?)\}\}")


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (hard — no fallthrough if missing)
      2. .rascal.yaml (variants) in CWD
      3. ~/.rascal/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' in the returned dict so relative paths in the
    config (env_file, cookie_db) resolve against the config file.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {
        "defaults": data.get("defaults") or {},
        "_config_dir": path.resolve().parent,
    }


def config_relative(value: str | None, config: dict) -> Path | None:
    """Resolve a path from the config relative to the config file's directory."""
    if not value:
        return None
    p = Path(value).expanduser()
    config_dir = config.get("_config_dir")
    if not p.is_absolute() and config_dir:
        p = Path(config_dir) / p
    return p


def default_cookie_db() -> Path:
    return Path(tempfile.gettempdir()) / COOKIE_DB_NAME


def resolve_cookie_db(cli_cookie_db: str | None, config: dict) -> Path:
    """Pick the cookie store location.

    Resolution order:
      1. --cookie-db CLI flag
      2. cookie_db from config (relative to config file)
      3. <tempdir>/rascal.sqlite3
    """
    if cli_cookie_db:
        return Path(cli_cookie_db)
    configured = config_relative(config.get("defaults", {}).get("cookie_db"), config)
    return configured or default_cookie_db()


def load_env(env_file: str | Path | None) -> dict[str, str]:
    """Load .env file and merge with os.environ.

    .env values take precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(env_file)
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def build_context(env: dict[str, str], kwargs: dict[str, str]) -> dict[str, str]:
    """Build the template context.

    Every environment variable is available as env_<NAME> and every
    key=value argument as arg_<key>.
    """
    context = {f"{ENV_PREFIX}{k}": v for k, v in env.items()}
    context.update({f"{ARG_PREFIX}{k}": v for k, v in kwargs.items()})
    return context


def _builtin(key: str) -> str | None:
    if key in ("uuid", "uuidv4"):
        return str(uuid.uuid4())
    if key == "timestamp":
        return str(int(_time.time()))
    if key == "timestamp_ms":
        return str(int(_time.time() * 1000))
    if key == "date":
        return datetime.datetime.now(datetime.timezone.utc).isoformat()
    return None


def render_template(text: str, context: dict[str, Any]) -> str:
    """Resolve {{...}} placeholders in text.

    Supported:
    - {{env_VAR}}      -> environment variable
    - {{arg_key}}      -> value passed as key=value
    - {{uuid}}         -> random UUID v4
    - {{timestamp}}    -> unix timestamp seconds
    - {{timestamp_ms}} -> unix timestamp milliseconds
    - {{date}}         -> ISO date string

    Raises SpecError for a placeholder that resolves to nothing.
    """

    def _replace(m: re.Match) -> str:
        key = m.group(1).strip()
        if key in context:
            return str(context[key])
        value = _builtin(key)
        if value is None:
            raise SpecError(f"failed to render template, unknown variable '{key}'")
        return value

    return _PLACEHOLDER_RE.sub(_replace, text)


def load_request(
    input_file: str | Path,
    kwargs: dict[str, str] | None = None,
    env: dict[str, str] | None = None,
) -> RequestSpec:
    """Read, render and parse the request spec in input_file."""
    try:
        raw = Path(input_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SpecError(f"failed to read from file={input_file}: {e}") from e

    context = build_context(env if env is not None else dict(os.environ), kwargs or {})
    rendered = render_template(raw, context)
    return parse_request(rendered)
