"""Configuration loading for the WR statistics tool.

Reads a TOML file of the form::

    [mail.server]
    server = "imap.example.com"
    port = 993
    username = "me@example.com"     # optional, prompted if missing

    [mail.query]
    pattern = ["Weekly Report"]
    from = "me@example.com"
    to = "boss@example.com"
    year = 2023
    wr_mailboxes = ["Sent"]
    re_mailboxes = ["INBOX"]

    [stats]
    num_holidays = 6
    output = "shared/stats.json"

    [server]
    address = "127.0.0.1:8080"
"""

from __future__ import annotations

import getpass
import os
import tomllib
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from wr_errors import ConfigError
from wr_query import QuerySpec

DEFAULT_CONFIG_PATH = "config.toml"
DEFAULT_IMAP_PORT = 993
DEFAULT_STATS_OUTPUT = os.path.join("shared", "stats.json")
DEFAULT_SERVER_ADDRESS = "127.0.0.1:8080"

ENV_CONFIG = "WR_STATS_CONFIG"
ENV_USERNAME = "WR_STATS_USERNAME"
ENV_PASSWORD = "WR_STATS_PASSWORD"


@dataclass(frozen=True)
class MailLogin:
    server: str
    port: int = DEFAULT_IMAP_PORT
    username: str | None = None
    password: str | None = None

    def __repr__(self) -> str:
        masked = "***" if self.password else None
        return (
            f"MailLogin(server={self.server!r}, port={self.port}, "
            f"username={self.username!r}, password={masked!r})"
        )


@dataclass(frozen=True)
class StatsConfig:
    # Weeks without a WR due (vacation, sick leave, ...)
    num_holidays: int = 0
    output: str = DEFAULT_STATS_OUTPUT


@dataclass(frozen=True)
class ServerConfig:
    address: str = DEFAULT_SERVER_ADDRESS

    @property
    def host(self) -> str:
        return self.address.rpartition(":")[0] or "127.0.0.1"

    @property
    def port(self) -> int:
        return int(self.address.rpartition(":")[2])


@dataclass(frozen=True)
class AppConfig:
    login: MailLogin
    query: QuerySpec
    stats: StatsConfig = field(default_factory=StatsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _section(data: dict, *path: str) -> dict:
    node: Any = data
    for key in path:
        node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            raise ConfigError(f"Missing section [{'.'.join(path)}]")
    if not isinstance(node, dict):
        raise ConfigError(f"[{'.'.join(path)}] must be a table")
    return node


def _optional_section(data: dict, name: str) -> dict:
    node = data.get(name)
    if node is None:
        return {}
    if not isinstance(node, dict):
        raise ConfigError(f"[{name}] must be a table")
    return node


def _require(section: dict, key: str, kind: type, where: str) -> Any:
    if key not in section:
        raise ConfigError(f"Missing key '{key}' in [{where}]")
    return _check_type(section[key], key, kind, where)


def _check_type(value: Any, key: str, kind: type, where: str) -> Any:
    # bool is an int subclass but never a valid count/port/year
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f"'{key}' in [{where}] must be of type {kind.__name__}")
    return value


def _str_list(section: dict, key: str, where: str, required: bool = True) -> tuple[str, ...]:
    if key not in section and not required:
        return ()
    values = _require(section, key, list, where)
    if not all(isinstance(v, str) for v in values):
        raise ConfigError(f"'{key}' in [{where}] must be a list of strings")
    return tuple(values)


def parse_config(data: dict) -> AppConfig:
    """Build an :class:`AppConfig` from a parsed TOML document.

    Raises:
        ConfigError: If a required section or key is missing or has the
            wrong type.  The pattern count itself is validated later, when
            the search query is built.
    """
    srv = _section(data, "mail", "server")
    login = MailLogin(
        server=_require(srv, "server", str, "mail.server"),
        port=_check_type(srv.get("port", DEFAULT_IMAP_PORT), "port", int, "mail.server"),
        username=srv.get("username"),
        password=srv.get("password"),
    )

    q = _section(data, "mail", "query")
    query = QuerySpec(
        pattern=_str_list(q, "pattern", "mail.query"),
        sender=_require(q, "from", str, "mail.query"),
        recipient=_require(q, "to", str, "mail.query"),
        year=_require(q, "year", int, "mail.query"),
        wr_mailboxes=_str_list(q, "wr_mailboxes", "mail.query"),
        re_mailboxes=_str_list(q, "re_mailboxes", "mail.query"),
    )

    st = _optional_section(data, "stats")
    stats = StatsConfig(
        num_holidays=_check_type(st.get("num_holidays", 0), "num_holidays", int, "stats"),
        output=_check_type(st.get("output", DEFAULT_STATS_OUTPUT), "output", str, "stats"),
    )

    address = _optional_section(data, "server").get("address", DEFAULT_SERVER_ADDRESS)
    if not isinstance(address, str) or not address.rpartition(":")[2].isdigit():
        raise ConfigError("'address' in [server] must look like 'host:port'")

    return AppConfig(login=login, query=query, stats=stats, server=ServerConfig(address))


def load_config(path: str | None = None) -> AppConfig:
    """Load the configuration file.

    Args:
        path: Path to the TOML file.  Defaults to ``$WR_STATS_CONFIG`` or
            ``config.toml`` in the current directory.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid TOML, or
            fails validation.
    """
    path = path or os.environ.get(ENV_CONFIG, DEFAULT_CONFIG_PATH)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc
    return parse_config(data)


def with_overrides(
    config: AppConfig,
    year: int | None = None,
    num_holidays: int | None = None,
    output: str | None = None,
) -> AppConfig:
    """Return a copy of *config* with command-line overrides applied."""
    if year is not None:
        config = replace(config, query=replace(config.query, year=year))
    if num_holidays is not None:
        config = replace(config, stats=replace(config.stats, num_holidays=num_holidays))
    if output is not None:
        config = replace(config, stats=replace(config.stats, output=output))
    return config


def resolve_credentials(
    login: MailLogin,
    prompt: Callable[[str], str] = input,
    secret_prompt: Callable[[str], str] = getpass.getpass,
    environ: dict | None = None,
) -> MailLogin:
    """Fill in a missing username/password.

    Values come from the config first, then ``$WR_STATS_USERNAME`` /
    ``$WR_STATS_PASSWORD``, then the interactive prompts.
    """
    env = os.environ if environ is None else environ
    username = login.username or env.get(ENV_USERNAME) or prompt("Username: ")
    password = login.password or env.get(ENV_PASSWORD) or secret_prompt("Password: ")
    return replace(login, username=username, password=password)
