"""Configuration loading.

Settings come from (lowest to highest priority): built-in defaults, an
optional YAML file, environment variables (a .env file is loaded first),
and explicit overrides such as CLI flags.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_ENDPOINT = "https://api.octopus.energy/"
DEFAULT_STANDING_CHARGE = 54.83  # pence/day inc. VAT

ENV_VARS = {
    "endpoint": "OCTOPUS_ENDPOINT",
    "account": "OCTOPUS_ACCOUNT",
    "api_key": "OCTOPUS_API_KEY",
    "db_path": "OCTOLEDGER_DB",
    "standing_charge": "OCTOLEDGER_STANDING_CHARGE",
}


@dataclass(frozen=True)
class OctopusConfig:
    """Connection and accounting settings passed to the client and sync engine."""

    endpoint: str = DEFAULT_ENDPOINT
    account: str = ""
    api_key: str = ""
    db_path: Path | None = None
    standing_charge: float = DEFAULT_STANDING_CHARGE
    interval_minutes: int = 30

    def __post_init__(self):
        if not self.endpoint.endswith("/"):
            object.__setattr__(self, "endpoint", self.endpoint + "/")
        if self.db_path is not None and not isinstance(self.db_path, Path):
            object.__setattr__(self, "db_path", Path(self.db_path))

    def require_credentials(self) -> None:
        """Raise ConfigError unless both account and API key are set."""
        if not self.account:
            raise ConfigError(
                "Octopus account not set.\n"
                "Set it with --account or: export OCTOPUS_ACCOUNT='A-1234ABCD'"
            )
        if not self.api_key:
            raise ConfigError(
                "Octopus API key not set.\n"
                "Find it at https://octopus.energy/dashboard/new/accounts/personal-details/api-access\n"
                "Then set it with --key or: export OCTOPUS_API_KEY='sk_live_...'"
            )


def _coerce(name: str, value):
    if name == "standing_charge":
        return float(value)
    if name == "interval_minutes":
        return int(value)
    return value


def load_config(config_path: Path | None = None, **overrides) -> OctopusConfig:
    """Build an OctopusConfig from YAML, environment and overrides.

    Override values of None are ignored, so unset CLI options fall through
    to the environment.
    """
    load_dotenv()
    known = {f.name for f in fields(OctopusConfig)}
    values: dict = {}

    if config_path is not None:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path}: expected a mapping of settings")
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"{config_path}: unknown settings {', '.join(sorted(unknown))}")
        values.update(data)

    for name, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            values[name] = os.environ[env_var]

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        values = {name: _coerce(name, value) for name, value in values.items()}
    except ValueError as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e

    return replace(OctopusConfig(), **values)
