"""
Configuration loading and validation.

Non-secret policy (reminder kinds, windows, cadences, templates) lives in a JSON
file; secrets come from the environment (optionally a .env file). Everything is
validated once, at startup, into a NotifierConfig that is then passed explicitly
to every job. Nothing downstream reads the environment.

Usage:
    from funnel_reminders.core.config import load_config

    config = load_config(Path("config/reminders.json"))
    for kind in config.enabled_kinds():
        print(kind.kind, kind.window_min, kind.window_max)
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal, Mapping, Optional

import pytz
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from funnel_reminders.core.errors import ConfigError
from funnel_reminders.core.models import ReminderWindow
from funnel_reminders.reminders.templates import TEMPLATES

DEFAULT_TIMEZONE = "America/Sao_Paulo"
CONFIG_PATH_ENV = "FUNNEL_REMINDERS_CONFIG"
MEMORY_LEDGER_URL = "memory://"

# a week plus a day covers weekday and hourly cron patterns
CRON_GAP_SPAN_DAYS = 8
CRON_GAP_REFERENCE = datetime(2026, 1, 5)

# Environment variable -> dotted path inside the config document
ENV_OVERRIDES: dict[str, str] = {
    "TIMEZONE": "timezone",
    "DATABASE_URL": "database_url",
    "INTERNAL_RECIPIENT": "internal_recipient",
    "GOOGLE_CALENDAR_ID": "calendar.calendar_id",
    "GOOGLE_CALENDAR_EMAIL": "calendar.service_account_email",
    "GOOGLE_CALENDAR_PRIVATE_KEY": "calendar.service_account_private_key",
    "EVOLUTION_API_URL": "whatsapp.base_url",
    "EVOLUTION_API_KEY": "whatsapp.api_key",
    "EVOLUTION_INSTANCE": "whatsapp.default_instance",
    "GEMINI_API_KEY": "motivational.gemini_api_key",
    "MOTIVATIONAL_RECIPIENT": "motivational.recipient",
}


def _check_timezone(name: str) -> str:
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"unknown timezone: {name!r}")
    return name


def _check_cron(expr: str, tz: str) -> None:
    try:
        CronTrigger.from_crontab(expr, timezone=pytz.timezone(tz))
    except ValueError as e:
        raise ValueError(f"invalid cron expression {expr!r}: {e}")


def max_cron_gap_minutes(expr: str, tz: str, span_days: int = CRON_GAP_SPAN_DAYS) -> Optional[float]:
    """Widest gap between consecutive fires over ``span_days``; None if it never fires."""
    trigger = CronTrigger.from_crontab(expr, timezone=pytz.timezone(tz))
    start = pytz.UTC.localize(CRON_GAP_REFERENCE)
    end = start + timedelta(days=span_days)
    previous = trigger.get_next_fire_time(None, start)
    if previous is None:
        return None
    widest = 0.0
    while previous <= end:
        fire = trigger.get_next_fire_time(previous, previous + timedelta(seconds=1))
        if fire is None:
            return None
        widest = max(widest, (fire - previous).total_seconds() / 60)
        previous = fire
    return widest


def _check_cron_cadence(kind: "ReminderKindConfig") -> None:
    """A cron-driven window kind must fire at least once per window width."""
    width = kind.window_max - kind.window_min
    gap = max_cron_gap_minutes(kind.cron, kind.timezone)
    if gap is None or gap > width:
        fires = "never fires" if gap is None else f"fires up to {gap:g} minutes apart"
        raise ValueError(
            f"kind {kind.kind!r}: cron {kind.cron!r} {fires}, "
            f"wider than the {width}-minute window"
        )


class CalendarSettings(BaseModel):
    """Google Calendar access (service account, read-only)."""
    calendar_id: str = "primary"
    service_account_email: Optional[str] = None
    service_account_private_key: Optional[str] = None
    page_size: int = Field(default=2500, gt=0, le=2500)

    @field_validator("service_account_private_key")
    @classmethod
    def unescape_newlines(cls, v: Optional[str]) -> Optional[str]:
        # keys pasted into .env files usually carry literal "\n"
        return v.replace("\\n", "\n") if v else v


class WhatsAppSettings(BaseModel):
    """Evolution API gateway."""
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    default_instance: str = "testedesafio"
    recipient_suffix: str = "@c.us"
    timeout_seconds: float = Field(default=15.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v


class ReminderKindConfig(BaseModel):
    """
    Policy for one reminder kind.

    Window kinds fire for events whose minutes-until-start fall in
    [window_min, window_max]; local-day kinds fire for every timed event of the
    local day the trigger runs in. ``cron`` drives the trigger when set,
    otherwise an interval of ``polling_cadence_minutes`` is used.
    """
    kind: str = Field(min_length=1)
    horizon: Literal["window", "local_day"] = "window"
    window_min: Optional[int] = None
    window_max: Optional[int] = None
    polling_cadence_minutes: Optional[int] = Field(default=None, gt=0)
    cron: Optional[str] = None
    timezone: Optional[str] = None  # defaults to the top-level timezone
    audience: Literal["client", "internal"] = "client"
    template: str
    instance: Optional[str] = None  # defaults to whatsapp.default_instance
    enabled: bool = True

    @field_validator("template")
    @classmethod
    def known_template(cls, v: str) -> str:
        if v not in TEMPLATES:
            raise ValueError(f"unknown template {v!r} (known: {', '.join(sorted(TEMPLATES))})")
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v) if v else v

    @model_validator(mode="after")
    def check_horizon(self) -> "ReminderKindConfig":
        if self.horizon == "window":
            if self.window_min is None or self.window_max is None:
                raise ValueError(f"kind {self.kind!r}: window kinds need window_min and window_max")
            if self.polling_cadence_minutes is None:
                raise ValueError(f"kind {self.kind!r}: window kinds need polling_cadence_minutes")
            # builds the window so its invariants are checked here, at startup
            self.window
        elif not self.cron:
            raise ValueError(f"kind {self.kind!r}: local_day kinds need a cron expression")
        if self.polling_cadence_minutes is None and not self.cron:
            raise ValueError(f"kind {self.kind!r}: set cron or polling_cadence_minutes")
        return self

    @property
    def window(self) -> ReminderWindow:
        try:
            return ReminderWindow(
                kind=self.kind,
                min_offset_minutes=self.window_min,
                max_offset_minutes=self.window_max,
                polling_cadence_minutes=self.polling_cadence_minutes,
            )
        except ValidationError as e:
            raise ValueError(f"kind {self.kind!r}: {e.errors()[0]['msg']}")


class MotivationalSettings(BaseModel):
    """Daily AI-written message to the team lead."""
    enabled: bool = False
    cron: str = "0 8 * * 1-5"
    timezone: Optional[str] = None
    recipient: Optional[str] = None
    person_name: str = "equipe"
    instance: Optional[str] = None
    model: str = "gemini-2.0-flash"
    gemini_api_key: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v) if v else v


def default_reminder_kinds() -> list[ReminderKindConfig]:
    """Reminder kinds shipped out of the box."""
    return [
        ReminderKindConfig(
            kind="30m", window_min=28, window_max=33, polling_cadence_minutes=5,
            audience="internal", template="briefing",
        ),
        ReminderKindConfig(
            kind="1h", window_min=59, window_max=66, polling_cadence_minutes=5,
            template="client_1h",
        ),
        ReminderKindConfig(
            kind="24h", window_min=1425, window_max=1455, polling_cadence_minutes=15,
            template="client_24h",
        ),
        ReminderKindConfig(
            kind="daily08h", horizon="local_day", cron="0 8 * * *",
            template="client_daily",
        ),
    ]


class NotifierConfig(BaseModel):
    """Complete, validated service configuration."""
    timezone: str = DEFAULT_TIMEZONE
    program_name: str = "Desafio Empreendedor"
    database_url: Optional[str] = None
    internal_recipient: Optional[str] = None
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)
    whatsapp: WhatsAppSettings = Field(default_factory=WhatsAppSettings)
    reminders: list[ReminderKindConfig] = Field(default_factory=default_reminder_kinds)
    motivational: Optional[MotivationalSettings] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        return _check_timezone(v)

    @model_validator(mode="after")
    def resolve_defaults(self) -> "NotifierConfig":
        seen: set[str] = set()
        for kind in self.reminders:
            if kind.kind in seen:
                raise ValueError(f"duplicate reminder kind {kind.kind!r}")
            seen.add(kind.kind)
            if kind.timezone is None:
                kind.timezone = self.timezone
            if kind.instance is None:
                kind.instance = self.whatsapp.default_instance
            if kind.cron:
                _check_cron(kind.cron, kind.timezone)
                if kind.horizon == "window":
                    _check_cron_cadence(kind)
        if self.motivational is not None:
            if self.motivational.timezone is None:
                self.motivational.timezone = self.timezone
            if self.motivational.instance is None:
                self.motivational.instance = self.whatsapp.default_instance
            _check_cron(self.motivational.cron, self.motivational.timezone)
        return self

    def enabled_kinds(self) -> list[ReminderKindConfig]:
        return [k for k in self.reminders if k.enabled]

    def get_kind(self, kind: str) -> ReminderKindConfig:
        for k in self.reminders:
            if k.kind == kind:
                return k
        raise KeyError(f"unknown reminder kind: {kind!r}")

    def missing_settings(
        self,
        need_messaging: bool = True,
        need_ledger: bool = True,
        need_calendar: bool = True,
    ) -> list[str]:
        """
        List settings the daemon cannot run without.

        Args:
            need_messaging: Whether the WhatsApp gateway must be configured
                (False for dry runs that only log messages).
            need_ledger: Whether a database URL is required (dry runs use
                the in-memory ledger).
            need_calendar: Whether calendar credentials are required.

        Returns:
            Human-readable problems, empty when ready.
        """
        problems: list[str] = []
        if need_calendar:
            if not self.calendar.service_account_email:
                problems.append("GOOGLE_CALENDAR_EMAIL is not set")
            if not self.calendar.service_account_private_key:
                problems.append("GOOGLE_CALENDAR_PRIVATE_KEY is not set")
        if need_ledger and not self.database_url:
            problems.append("DATABASE_URL is not set")
        if need_messaging:
            if not self.whatsapp.base_url:
                problems.append("EVOLUTION_API_URL is not set")
            if not self.whatsapp.api_key:
                problems.append("EVOLUTION_API_KEY is not set")
        if any(k.audience == "internal" for k in self.enabled_kinds()) and not self.internal_recipient:
            problems.append("INTERNAL_RECIPIENT is not set but an internal reminder kind is enabled")
        if self.motivational is not None and self.motivational.enabled:
            if not self.motivational.recipient:
                problems.append("motivational.recipient is not set")
            if not self.motivational.gemini_api_key:
                problems.append("GEMINI_API_KEY is not set")
        return problems

    def ensure_ready(self, **needs: bool) -> None:
        """Raise ConfigError listing every missing setting. Accepts missing_settings flags."""
        problems = self.missing_settings(**needs)
        if problems:
            raise ConfigError(problems)


def _set_dotted(doc: dict, dotted: str, value: str) -> None:
    *parents, leaf = dotted.split(".")
    node = doc
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value


def _format_errors(error: ValidationError) -> list[str]:
    problems = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "config"
        problems.append(f"{location}: {err['msg']}")
    return problems


def load_config(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> NotifierConfig:
    """
    Load and validate the service configuration.

    Args:
        path: JSON config file. Defaults to $FUNNEL_REMINDERS_CONFIG; built-in
            defaults are used when neither is set.
        env: Environment mapping to read secrets from. Defaults to os.environ
            after loading a .env file.

    Returns:
        Validated NotifierConfig.

    Raises:
        ConfigError: If the file is unreadable or any value is invalid.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    if path is None and env.get(CONFIG_PATH_ENV):
        path = Path(env[CONFIG_PATH_ENV])

    doc: dict = {}
    if path is not None:
        try:
            doc = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError([f"cannot read config file {path}: {e}"])
        if not isinstance(doc, dict):
            raise ConfigError([f"config file {path} must contain a JSON object"])

    for var, dotted in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            _set_dotted(doc, dotted, value)

    try:
        return NotifierConfig.model_validate(doc)
    except ValidationError as e:
        raise ConfigError(_format_errors(e))
