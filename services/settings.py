"""
Runtime configuration for sale tracking and commission attribution.

Values are read from environment variables (a project-level .env is loaded
through python-dotenv). Settings are built once and passed explicitly to the
components that need them; nothing here is mutated at runtime.

Environment variables (all optional):
- WEBSITE_COMMISSION_RATE / INSTAGRAM_COMMISSION_RATE / SMS_COMMISSION_RATE /
  OTHER_COMMISSION_RATE: fractions in [0, 1] (defaults 0.10 / 0.05 / 0.05 / 0.05)
- INSTAGRAM_CHANNEL_PREFIX: contact prefix marking Instagram conversations (default "instagram-")
- SALE_EVIDENCE_WINDOW: transcript messages kept as evidence (default 50)
- REPORTING_TIMEZONE: IANA zone used to interpret report dates (default "UTC")
- SALE_KEYWORDS_HIGH / SALE_KEYWORDS_MEDIUM / SALE_KEYWORDS_LOW: comma-separated phrases
  replacing one confidence tier of the built-in vocabulary
- SALE_MEDIUM_FLAG_THRESHOLD / SALE_LOW_FLAG_THRESHOLD / SALE_MEDIUM_CREATE_THRESHOLD:
  detection thresholds (defaults 2 / 3 / 3)
- SALES_STORE: "supabase" or "memory" (default "supabase")
- LOG_LEVEL: standard logging level name (default "INFO")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from domain.commission import (
    DEFAULT_COMMISSION_RATES,
    DEFAULT_INSTAGRAM_PREFIX,
    CommissionCalculator,
    validate_rate,
)
from domain.errors import ValidationError
from domain.evidence import DEFAULT_EVIDENCE_WINDOW
from domain.keywords import DetectionPolicy, KeywordDetector, KeywordVocabulary
from domain.sale import SaleChannel

env_path = Path(__file__).parent.parent / ".env"

STORE_BACKENDS = ("supabase", "memory")


@dataclass(frozen=True, slots=True)
class CommissionSettings:
    commission_rates: Mapping[SaleChannel, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_COMMISSION_RATES)
    )
    instagram_prefix: str = DEFAULT_INSTAGRAM_PREFIX
    evidence_window: int = DEFAULT_EVIDENCE_WINDOW
    vocabulary: KeywordVocabulary = field(default_factory=KeywordVocabulary)
    detection_policy: DetectionPolicy = field(default_factory=DetectionPolicy)
    reporting_timezone: str = "UTC"
    store_backend: str = "supabase"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.instagram_prefix:
            raise RuntimeError("INSTAGRAM_CHANNEL_PREFIX must not be empty")
        if self.evidence_window < 1:
            raise RuntimeError("SALE_EVIDENCE_WINDOW must be >= 1")
        if self.store_backend not in STORE_BACKENDS:
            raise RuntimeError(
                f"SALES_STORE must be one of {', '.join(STORE_BACKENDS)}; got {self.store_backend!r}"
            )
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise RuntimeError(f"LOG_LEVEL is not a logging level: {self.log_level!r}")
        try:
            ZoneInfo(self.reporting_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise RuntimeError(f"REPORTING_TIMEZONE is not a known zone: {self.reporting_timezone!r}") from exc

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.reporting_timezone)

    def build_calculator(self) -> CommissionCalculator:
        return CommissionCalculator(self.commission_rates)

    def build_detector(self) -> KeywordDetector:
        return KeywordDetector(self.vocabulary, self.detection_policy)


_RATE_VARIABLES = {
    SaleChannel.WEBSITE: "WEBSITE_COMMISSION_RATE",
    SaleChannel.INSTAGRAM: "INSTAGRAM_COMMISSION_RATE",
    SaleChannel.SMS: "SMS_COMMISSION_RATE",
    SaleChannel.OTHER: "OTHER_COMMISSION_RATE",
}


def _read_rate(channel: SaleChannel) -> Decimal:
    variable = _RATE_VARIABLES[channel]
    raw = os.getenv(variable)
    if raw is None or raw.strip() == "":
        return DEFAULT_COMMISSION_RATES[channel]
    try:
        return validate_rate(raw.strip(), name=variable)
    except ValidationError as exc:
        raise RuntimeError(str(exc)) from exc


def _read_int(variable: str, default: int) -> int:
    raw = os.getenv(variable)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{variable} must be an integer; got {raw!r}") from exc


def _read_phrases(variable: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(variable)
    if raw is None or raw.strip() == "":
        return default
    return tuple(phrase.strip() for phrase in raw.split(",") if phrase.strip())


def _read_vocabulary() -> KeywordVocabulary:
    defaults = KeywordVocabulary()
    try:
        return KeywordVocabulary(
            high=_read_phrases("SALE_KEYWORDS_HIGH", defaults.high),
            medium=_read_phrases("SALE_KEYWORDS_MEDIUM", defaults.medium),
            low=_read_phrases("SALE_KEYWORDS_LOW", defaults.low),
        )
    except ValueError as exc:
        raise RuntimeError(f"Invalid sale keyword vocabulary: {exc}") from exc


def _read_policy() -> DetectionPolicy:
    defaults = DetectionPolicy()
    try:
        return DetectionPolicy(
            medium_flag_threshold=_read_int("SALE_MEDIUM_FLAG_THRESHOLD", defaults.medium_flag_threshold),
            low_flag_threshold=_read_int("SALE_LOW_FLAG_THRESHOLD", defaults.low_flag_threshold),
            medium_create_threshold=_read_int("SALE_MEDIUM_CREATE_THRESHOLD", defaults.medium_create_threshold),
        )
    except ValueError as exc:
        raise RuntimeError(f"Invalid sale detection threshold: {exc}") from exc


def settings_from_env() -> CommissionSettings:
    """Build settings from the current environment (no caching)."""

    return CommissionSettings(
        commission_rates={channel: _read_rate(channel) for channel in SaleChannel},
        instagram_prefix=os.getenv("INSTAGRAM_CHANNEL_PREFIX", DEFAULT_INSTAGRAM_PREFIX),
        evidence_window=_read_int("SALE_EVIDENCE_WINDOW", DEFAULT_EVIDENCE_WINDOW),
        vocabulary=_read_vocabulary(),
        detection_policy=_read_policy(),
        reporting_timezone=os.getenv("REPORTING_TIMEZONE", "UTC").strip() or "UTC",
        store_backend=os.getenv("SALES_STORE", "supabase").strip().lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )


@lru_cache(maxsize=1)
def load_settings() -> CommissionSettings:
    """Load .env once and return the process-wide settings."""

    load_dotenv(dotenv_path=env_path)
    return settings_from_env()


__all__ = [
    "CommissionSettings",
    "load_settings",
    "settings_from_env",
]
