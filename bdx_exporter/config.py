from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser
import math
import os
import re
from typing import Mapping

from dotenv import load_dotenv

from bdx_exporter.errors import ConfigurationError
from bdx_exporter.parsers import CDU_STATUS_PATTERN, RACK_TABLE_PATTERN

DEFAULT_TRH_URL = "https://app.managed360view.com/360view/trh_monitoring_dashboard.php"
DEFAULT_LIQUID_URL = "https://app.managed360view.com/360view/liquid_cooling_overview.php"
DEFAULT_CDU_URLS = tuple(
    f"https://app.managed360view.com/360view/cdu_dashboard.php?cabinetid={cabinet}"
    for cabinet in (38329, 38337, 38331, 38339, 38333, 38341, 38335, 38343)
)

# (section, option) -> environment variable
ENV_OVERRIDES: dict[tuple[str, str], str] = {
    ("server", "host"): "LISTEN_HOST",
    ("server", "port"): "PORT",
    ("collect", "interval"): "SCRAPE_INTERVAL",
    ("collect", "http_timeout"): "HTTP_TIMEOUT",
    ("collect", "scrape_timeout"): "SCRAPE_TIMEOUT",
    ("collect", "max_workers"): "MAX_WORKERS",
    ("sources", "trh_url"): "TRH_URL",
    ("sources", "liquid_url"): "LIQUID_URL",
    ("sources", "cdu_urls"): "CDU_URLS",
    ("sources", "referer"): "REFERER",
    ("sources", "cookie_domain"): "COOKIE_DOMAIN",
    ("session", "sess_map"): "SESS_MAP",
    ("session", "phpsessid"): "PHPSESSID",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int


@dataclass(frozen=True)
class CollectConfig:
    interval_s: float
    http_timeout_s: float
    scrape_timeout_s: float
    max_workers: int
    settle_s: float


@dataclass(frozen=True)
class SourcesConfig:
    trh_url: str | None
    liquid_url: str | None
    cdu_urls: list[str]
    referer: str
    cookie_domain: str | None


@dataclass(frozen=True)
class SessionConfig:
    sess_map: str
    phpsessid: str

    @property
    def complete(self) -> bool:
        return bool(self.sess_map and self.phpsessid)


@dataclass(frozen=True)
class ParsingConfig:
    cdu_status_pattern: str
    rack_table_pattern: str


@dataclass(frozen=True)
class AppConfig:
    server: ServerConfig
    collect: CollectConfig
    sources: SourcesConfig
    session: SessionConfig
    parsing: ParsingConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_list(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_duration(value: str) -> float:
    """Parse ``30s``, ``1m30s``, ``500ms``, ``2h`` or bare seconds into seconds."""
    text = value.strip()
    if not text:
        raise ConfigurationError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        position = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != position:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            position = match.end()
        if position != len(text) or position == 0:
            raise ConfigurationError(f"invalid duration {value!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigurationError(f"duration must be positive, got {value!r}")
    return seconds


def _get_int(parser: configparser.ConfigParser, section: str, option: str, fallback: int) -> int:
    try:
        return parser.getint(section, option, fallback=fallback)
    except ValueError as exc:
        raise ConfigurationError(f"[{section}] {option}: {exc}") from exc


def _get_duration(parser: configparser.ConfigParser, section: str, option: str, fallback: str) -> float:
    value = parser.get(section, option, fallback=fallback)
    try:
        return parse_duration(value)
    except ConfigurationError as exc:
        raise ConfigurationError(f"[{section}] {option}: {exc}") from exc


def _get_pattern(parser: configparser.ConfigParser, option: str, fallback: str) -> str:
    pattern = parser.get("parsing", option, fallback=fallback, raw=True)
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"[parsing] {option}: {exc}") from exc
    return pattern


def _apply_environment(parser: configparser.ConfigParser, environ: Mapping[str, str]) -> None:
    for (section, option), variable in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if not value:
            continue
        if not parser.has_section(section):
            parser.add_section(section)
        parser.set(section, option, value)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build the configuration from defaults, an optional CFG file and the environment.

    Environment variables win over the file. When ``environ`` is not given a
    ``.env`` file in the working directory is loaded into ``os.environ`` first.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    parser = configparser.ConfigParser(interpolation=None)
    if path is not None:
        read_files = parser.read(path)
        if not read_files:
            raise ConfigurationError(f"Config file not found: {path}")
    _apply_environment(parser, environ)

    port = _get_int(parser, "server", "port", 8080)
    if not 0 < port < 65536:
        raise ConfigurationError(f"[server] port out of range: {port}")
    server = ServerConfig(
        host=parser.get("server", "host", fallback="0.0.0.0"),
        port=port,
    )

    max_workers = _get_int(parser, "collect", "max_workers", 4)
    if max_workers < 1:
        raise ConfigurationError(f"[collect] max_workers must be at least 1, got {max_workers}")
    collect = CollectConfig(
        interval_s=_get_duration(parser, "collect", "interval", "30s"),
        http_timeout_s=_get_duration(parser, "collect", "http_timeout", "10s"),
        scrape_timeout_s=_get_duration(parser, "collect", "scrape_timeout", "30s"),
        max_workers=max_workers,
        settle_s=_get_duration(parser, "collect", "settle", "2s"),
    )

    trh_url = _get_optional(parser.get("sources", "trh_url", fallback=DEFAULT_TRH_URL))
    sources = SourcesConfig(
        trh_url=trh_url,
        liquid_url=_get_optional(parser.get("sources", "liquid_url", fallback=DEFAULT_LIQUID_URL)),
        cdu_urls=_get_list(parser.get("sources", "cdu_urls", fallback=",".join(DEFAULT_CDU_URLS))),
        referer=parser.get("sources", "referer", fallback=trh_url or DEFAULT_TRH_URL),
        cookie_domain=_get_optional(parser.get("sources", "cookie_domain", fallback=None)),
    )

    session = SessionConfig(
        sess_map=parser.get("session", "sess_map", fallback="").strip(),
        phpsessid=parser.get("session", "phpsessid", fallback="").strip(),
    )

    parsing = ParsingConfig(
        cdu_status_pattern=_get_pattern(parser, "cdu_status_pattern", CDU_STATUS_PATTERN),
        rack_table_pattern=_get_pattern(parser, "rack_table_pattern", RACK_TABLE_PATTERN),
    )

    return AppConfig(
        server=server,
        collect=collect,
        sources=sources,
        session=session,
        parsing=parsing,
    )
