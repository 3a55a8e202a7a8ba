"""Configuration — target connection settings and variable sources.

Target settings are layered: ``unitflow.yaml`` < ``UNITFLOW_*`` environment
variables < explicit overrides (CLI flags). Variables passed to scripts are
layered: vars file < inline JSON < ``key=value`` pairs.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_FILE = "unitflow.yaml"
DEFAULT_API_VERSION = "v25_6"
DEFAULT_AUTH_SERVER = "https://account.demandware.com/dwsso/oauth2/access_token"

ENV_PREFIX = "UNITFLOW_"


@dataclass
class TargetConfig:
    """Connection settings for one remote instance.

    Built once per invocation and passed down explicitly; there is no
    module-level client.
    """

    hostname: str = ""
    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    code_version: str = ""
    short_code: str = ""
    api_version: str = DEFAULT_API_VERSION
    auth_server: str = DEFAULT_AUTH_SERVER

    @property
    def data_api_url(self) -> str:
        return f"https://{self.hostname}/s/-/dw/data/{self.api_version}"

    @property
    def webdav_url(self) -> str:
        return f"https://{self.hostname}/on/demandware.servlet/webdav/Sites"


def load_target_config(path: str | Path | None = None, **overrides: Any) -> TargetConfig:
    """Resolve a :class:`TargetConfig` from file, environment and overrides.

    Args:
        path: YAML config file. Defaults to ``unitflow.yaml`` in the working
              directory; a missing default file is not an error.
        **overrides: Field values that win over everything else. ``None``
              and empty values are ignored so unset CLI flags fall through.
    """
    names = {f.name for f in fields(TargetConfig)}
    values: dict[str, Any] = {}

    config_path = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILE
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        values.update({k: v for k, v in data.items() if k in names and v is not None})
    elif path:
        raise FileNotFoundError(f"Config file does not exist: {config_path}")

    for name in names:
        env_value = os.environ.get(ENV_PREFIX + name.upper())
        if env_value:
            values[name] = env_value

    values.update({k: v for k, v in overrides.items() if k in names and v})

    return TargetConfig(**{k: str(v) for k, v in values.items()})


def parse_vars(
    vars_file: str | Path | None = None,
    vars_json: str | None = None,
    pairs: list[str] | tuple[str, ...] | None = None,
) -> dict[str, Any]:
    """Merge script variables from all sources.

    Precedence: file < inline JSON < ``key=value`` pairs. The file may be
    JSON or YAML.
    """
    result: dict[str, Any] = {}

    if vars_file:
        with open(Path(vars_file).resolve()) as f:
            result.update(yaml.safe_load(f) or {})

    if vars_json:
        result.update(json.loads(vars_json))

    for pair in pairs or ():
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f'Invalid var format: "{pair}". Expected key=value.')
        result[key] = value

    return result
