"""
Dial-by-Name Directory - Telephony Data Models

Pydantic models for inbound call events and per-call directory state, plus
the per-request options resolved from an event and the settings.
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from urllib.parse import urlencode

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from dialbyname.config import Settings
from dialbyname.core.types import DirectoryEntry, SearchMode
from .privacy import is_external_number
from .providers import VoiceSettings


class CallState(str, Enum):
    """Where the caller is in the directory."""
    INITIAL = "initial"
    SEARCHING = "searching"
    SELECTING = "selecting"


class ExitAction(str, Enum):
    """What * does at the main prompt when there is nowhere to return to."""
    FORWARD = "forward"
    HANGUP = "hangup"
    RESTART = "restart"


SUPPORTED_LANGUAGES = frozenset({
    "en-US", "en-GB", "en-AU", "en-CA", "en-IN",
    "es-ES", "es-MX", "es-US",
    "fr-FR", "fr-CA",
    "de-DE", "de-AT", "de-CH",
    "it-IT",
    "pt-BR", "pt-PT",
    "nl-NL",
    "ja-JP",
    "ko-KR",
    "zh-CN", "zh-TW",
    "ru-RU",
    "pl-PL",
    "sv-SE",
    "da-DK",
    "no-NO",
    "fi-FI",
})

MIN_DIGITS, MAX_DIGITS = 2, 10
MIN_RESULTS, MAX_RESULTS = 1, 9


# =============================================================================
# Pagination
# =============================================================================

def page_size_for(max_results: int) -> int:
    """Entries per page; the last menu slot is kept for "9 for more"."""
    return max(1, max_results - 1)


def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def page_slice(matches: List[DirectoryEntry], page: int, page_size: int) -> List[DirectoryEntry]:
    start = page * page_size
    return list(matches[start:start + page_size])


def has_next_page(total: int, page: int, page_size: int) -> bool:
    return (page + 1) * page_size < total


# =============================================================================
# Call Session
# =============================================================================

class CallSession(BaseModel):
    """
    Directory state for one call, persisted between webhook invocations.

    `state` is kept as its raw string so that a corrupt or unknown value
    survives loading and can be detected by the call flow.
    """

    call_id: str
    state: str = CallState.INITIAL.value
    accumulated_digits: str = ""
    all_matches: List[DirectoryEntry] = Field(default_factory=list)
    current_page_matches: List[DirectoryEntry] = Field(default_factory=list)
    current_page: int = 0

    # Where * at the main prompt returns the caller ("" = nowhere).
    # Resolved once per call; return_to_resolved records that it was.
    return_to: str = ""
    return_to_resolved: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)

    def show_page(self, matches: List[DirectoryEntry], page: int, page_size: int) -> None:
        """Enter the results menu on a page; the only writer of the page fields."""
        self.state = CallState.SELECTING.value
        self.all_matches = list(matches)
        self.current_page = page
        self.current_page_matches = page_slice(self.all_matches, page, page_size)
        self.accumulated_digits = ""

    def reset_search(self) -> None:
        """Back to the main prompt with nothing entered."""
        self.state = CallState.SEARCHING.value
        self.accumulated_digits = ""
        self.all_matches = []
        self.current_page_matches = []
        self.current_page = 0


# =============================================================================
# Inbound Event
# =============================================================================

class DirectoryEvent(BaseModel):
    """
    One webhook invocation from the telephony platform.

    Accepts the platform's CDR-style field names and plain snake_case
    names interchangeably. Option fields are None when not supplied.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    domain: str = Field("", validation_alias=AliasChoices("domain", "ToDomain", "AccountDomain"))
    digits: str = Field("", validation_alias=AliasChoices("digits", "Digits"))
    call_id: str = Field("", validation_alias=AliasChoices("call_id", "OrigCallID", "TermCallID"))
    ani: str = Field("", validation_alias=AliasChoices("ani", "NmsAni"))
    dnis: str = Field("", validation_alias=AliasChoices("dnis", "NmsDnis"))
    account_user: str = Field("", validation_alias=AliasChoices("account_user", "AccountUser"))
    account_domain: str = Field("", validation_alias=AliasChoices("account_domain", "AccountDomain"))

    site: Optional[str] = None
    department: Optional[str] = None
    mode: Optional[str] = None
    maxdigits: Optional[str] = None
    maxresults: Optional[str] = None
    language: Optional[str] = None
    voice: Optional[str] = None
    exit_url: Optional[str] = None
    exit_action: Optional[str] = None
    operator: Optional[str] = None
    bycaller: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_scalar(cls, value):
        if isinstance(value, (int, float, bool)):
            return str(value)
        return value

    @field_validator("domain", "digits", "call_id", "ani", "dnis", "account_user", "account_domain", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @property
    def sites(self) -> List[str]:
        return _split_list(self.site)

    @property
    def departments(self) -> List[str]:
        return _split_list(self.department)

    @property
    def effective_account_domain(self) -> str:
        return self.account_domain or self.domain

    @property
    def session_key(self) -> str:
        """
        Call identifier used to key the session.

        Falls back to a stable surrogate built from the call's metadata when
        the platform sends no call id.
        """
        if self.call_id:
            return self.call_id
        material = f"{self.domain}|{self.ani}|{self.dnis}|{self.account_user}"
        return "anon_" + hashlib.sha256(material.encode()).hexdigest()[:16]


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


# =============================================================================
# Resolved Options
# =============================================================================

def resolve_by_caller(ani: str, dnis: str, override: Optional[str] = None) -> Optional[str]:
    """
    Decide the ByCaller attribute for transfers.

    Auto-detection: when both ANI and DNIS look like full public numbers the
    call came in from outside and the attribute is omitted; otherwise the
    call is internal and ByCaller="yes" keeps the caller's dial plan.

    Override: "yes"/"no" force that value; "none" or "" omit the attribute.
    """
    if override is not None:
        value = override.strip().lower()
        if value in ("yes", "no"):
            return value
        if value in ("none", ""):
            return None

    if is_external_number(ani) and is_external_number(dnis):
        return None
    return "yes"


def _resolve_voice(voice: str) -> str:
    voice = voice.strip().lower()
    if voice in ("male", "female"):
        return voice
    if any(ch == "-" or ch.isdigit() for ch in voice):
        return voice
    return "female"


@dataclass(frozen=True)
class DirectoryOptions:
    """Everything one webhook invocation needs, request values over settings."""

    domain: str
    sites: Tuple[str, ...] = ()
    departments: Tuple[str, ...] = ()
    mode: SearchMode = SearchMode.LASTNAME
    max_digits: int = 4
    max_results: int = 8
    voice: VoiceSettings = VoiceSettings()
    operator_extension: str = ""
    exit_url: str = ""
    exit_action: ExitAction = ExitAction.FORWARD
    by_caller: Optional[str] = "yes"
    callback_url: str = ""

    @property
    def page_size(self) -> int:
        return page_size_for(self.max_results)

    @classmethod
    def resolve(cls, event: DirectoryEvent, settings: Settings, base_url: str = "") -> "DirectoryOptions":
        """
        Merge an event's option fields over the settings defaults, clamp
        them to supported ranges and build the callback URL.
        """
        mode_value = event.mode if event.mode is not None else settings.default_mode
        try:
            mode = SearchMode(mode_value)
        except ValueError:
            mode = SearchMode.LASTNAME

        exit_value = event.exit_action if event.exit_action is not None else settings.exit_action
        try:
            exit_action = ExitAction(exit_value)
        except ValueError:
            exit_action = ExitAction.FORWARD

        language = event.language if event.language is not None else settings.default_language
        if language not in SUPPORTED_LANGUAGES:
            language = "en-US"
        voice_value = event.voice if event.voice is not None else settings.default_voice

        options = cls(
            domain=event.domain.strip(),
            sites=tuple(event.sites),
            departments=tuple(event.departments),
            mode=mode,
            max_digits=_clamp(
                _parse_int(event.maxdigits, settings.default_max_digits), MIN_DIGITS, MAX_DIGITS
            ),
            max_results=_clamp(
                _parse_int(event.maxresults, settings.default_max_results), MIN_RESULTS, MAX_RESULTS
            ),
            voice=VoiceSettings(language=language, voice=_resolve_voice(voice_value)),
            operator_extension=(
                event.operator if event.operator is not None else settings.operator_extension
            ).strip(),
            exit_url=(event.exit_url if event.exit_url is not None else settings.exit_url).strip(),
            exit_action=exit_action,
            by_caller=resolve_by_caller(event.ani, event.dnis, event.bycaller),
        )
        return options.with_callback(base_url, settings)

    def with_callback(self, base_url: str, settings: Settings) -> "DirectoryOptions":
        """
        Attach the URL the platform calls back after a gather.

        Only options that differ from the settings defaults are carried in
        the query string, so every callback resolves to the same options.
        ByCaller is re-detected on every request and is not carried.
        """
        params = {}
        if self.sites:
            params["site"] = ",".join(self.sites)
        if self.departments:
            params["department"] = ",".join(self.departments)
        if self.mode.value != settings.default_mode:
            params["mode"] = self.mode.value
        if self.max_digits != settings.default_max_digits:
            params["maxdigits"] = self.max_digits
        if self.max_results != settings.default_max_results:
            params["maxresults"] = self.max_results
        if self.voice.language != settings.default_language:
            params["language"] = self.voice.language
        if self.voice.voice != settings.default_voice:
            params["voice"] = self.voice.voice
        if self.operator_extension:
            params["operator"] = self.operator_extension
        if self.exit_url:
            params["exit_url"] = self.exit_url
        if self.exit_action.value != settings.exit_action:
            params["exit_action"] = self.exit_action.value

        url = base_url
        if params:
            url = f"{base_url}?{urlencode(params)}"

        return DirectoryOptions(
            domain=self.domain,
            sites=self.sites,
            departments=self.departments,
            mode=self.mode,
            max_digits=self.max_digits,
            max_results=self.max_results,
            voice=self.voice,
            operator_extension=self.operator_extension,
            exit_url=self.exit_url,
            exit_action=self.exit_action,
            by_caller=self.by_caller,
            callback_url=url,
        )
