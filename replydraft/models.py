import hashlib
import json
import math
import re
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InputValidationError
from .text import collapse_whitespace, trim_and_clip

ReplyAs = Literal["owner", "manager", "we"]
Tone = Literal["warm", "neutral", "direct", "playful"]
Brevity = Literal["short", "medium"]
Formality = Literal["casual", "professional"]

VOICE_CHOICES: Dict[str, Tuple[str, ...]] = {
    "reply_as": ("owner", "manager", "we"),
    "tone": ("warm", "neutral", "direct", "playful"),
    "brevity": ("short", "medium"),
    "formality": ("casual", "professional"),
}
TONES = VOICE_CHOICES["tone"]

MAX_REVIEW_CHARS = 5000
MAX_RULES = 12


def clean_language(value, default: str = "en") -> str:
    return (trim_and_clip(value, 20) or default)[:12].lower()


def normalize_tone_label(label) -> str:
    """Map a free-form org tone label onto a voice tone."""
    t = trim_and_clip(label, 40).lower()
    if t in ("playful", "direct", "neutral"):
        return t
    if t == "professional":
        return "neutral"
    return "warm"


class ReviewInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(max_length=MAX_REVIEW_CHARS)
    rating: int = Field(ge=1, le=5)
    business_name: str
    reviewer_language: str = "en"


class VoiceProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply_as: ReplyAs = "we"
    tone: Tone = "warm"
    brevity: Brevity = "short"
    formality: Formality = "professional"
    avoid_phrases: FrozenSet[str] = frozenset()
    allow_exclamation: bool = False


def _pick_choice(field: str, layers) -> Optional[str]:
    for layer in layers:
        value = layer.get(field)
        if isinstance(value, str) and value.strip().lower() in VOICE_CHOICES[field]:
            return value.strip().lower()
    return None


def resolve_voice_profile(
    org_tone_label: str = "warm",
    stored: Optional[Mapping[str, Any]] = None,
    requested: Optional[Mapping[str, Any]] = None,
) -> VoiceProfile:
    """Merge defaults, the stored org override and the request override.

    Each field falls back progressively: a missing or invalid value on the
    request uses the stored value, then the org label (tone only), then the
    default.
    """
    layers = [layer for layer in (requested, stored) if isinstance(layer, Mapping)]
    data: Dict[str, Any] = {}

    for field in VOICE_CHOICES:
        value = _pick_choice(field, layers)
        if value is not None:
            data[field] = value

    if "tone" not in data:
        data["tone"] = normalize_tone_label(org_tone_label)
    if trim_and_clip(org_tone_label, 40).lower() == "professional":
        data["formality"] = "professional"

    for layer in layers:
        avoid = layer.get("avoid_phrases", layer.get("things_to_avoid"))
        if isinstance(avoid, (list, tuple, set, frozenset)):
            data["avoid_phrases"] = frozenset(
                p for p in (trim_and_clip(str(x), 80) for x in avoid) if p
            )
            break

    for layer in layers:
        if isinstance(layer.get("allow_exclamation"), bool):
            data["allow_exclamation"] = layer["allow_exclamation"]
            break

    return VoiceProfile(**data)


class OrgReplySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_language: str = "en"
    reply_tone: str = "warm"
    reply_signature: Optional[str] = None

    @classmethod
    def from_values(cls, owner_language=None, reply_tone=None, reply_signature=None) -> "OrgReplySettings":
        return cls(
            owner_language=clean_language(owner_language),
            reply_tone=trim_and_clip(reply_tone, 40) or "warm",
            reply_signature=trim_and_clip(reply_signature, 80) or None,
        )


class SampleRecord(BaseModel):
    id: str
    text: str
    created_at: Optional[datetime] = None


class VoiceSampleCandidate(BaseModel):
    id: str
    raw_text: str
    cleaned_text: str
    score: float = Field(ge=0.0, le=1.0)
    token_set: FrozenSet[str] = frozenset()
    created_at: Optional[datetime] = None


class CuratedVoiceSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    texts: Tuple[str, ...] = ()
    sample_ids: Tuple[str, ...] = ()
    total_chars: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.texts


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    system: str
    prompt: str
    sentence_budget: int = Field(ge=2, le=4)
    temperature: float
    max_tokens: int
    prompt_version: str
    banned_list_version: str

    def fingerprint(self, model: str) -> str:
        """Hash of everything that determines how the prompt is sampled."""
        payload = json.dumps({
            "prompt_version": self.prompt_version,
            "banned_list_version": self.banned_list_version,
            "model": model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }, sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DraftReply(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    prompt_fingerprint: str
    enforcement_version: str
    sample_count: int = 0
    sample_ids: Tuple[str, ...] = ()
    diagnostics: Dict[str, Any] = Field(default_factory=dict)


class DraftMeta(BaseModel):
    owner_language: str
    reviewer_language: str
    reply_tone: str
    reply_signature: Optional[str] = None


class DraftResponse(BaseModel):
    reply_text: str
    meta: DraftMeta


def parse_rating(value) -> float:
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    digits = re.sub(r"[^\d.]", "", str(value if value is not None else ""))
    try:
        return float(digits)
    except ValueError:
        return math.nan


class DraftRequest(BaseModel):
    """Caller-facing request body, validated once at the boundary."""

    review_text: str = Field("", validate_default=True)
    business_name: str = Field("", validate_default=True)
    rating: Optional[int] = Field(None, validate_default=True)
    language: str = Field("en", validate_default=True)
    tone: Optional[Tone] = None
    rules: List[str] = Field(default_factory=list)
    voice: Dict[str, Any] = Field(default_factory=dict)
    review_id: Optional[str] = None
    external_review_id: Optional[str] = None

    @field_validator("review_text", mode="before")
    @classmethod
    def _review_text(cls, v):
        text = trim_and_clip(v, MAX_REVIEW_CHARS)
        if not text:
            raise ValueError("review_text is required")
        return text

    @field_validator("business_name", mode="before")
    @classmethod
    def _business_name(cls, v):
        name = trim_and_clip(v, 200)
        if not name:
            raise ValueError("business_name is required")
        return name

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, v):
        n = parse_rating(v)
        if not math.isfinite(n) or n < 1 or n > 5:
            raise ValueError("rating must be 1-5")
        return int(round(n))

    @field_validator("language", mode="before")
    @classmethod
    def _language(cls, v):
        return clean_language(v)

    @field_validator("tone", mode="before")
    @classmethod
    def _tone(cls, v):
        t = trim_and_clip(v, 24).lower()
        return t if t in TONES else None

    @field_validator("rules", mode="before")
    @classmethod
    def _rules(cls, v):
        if not isinstance(v, (list, tuple)):
            return []
        cleaned = [collapse_whitespace(trim_and_clip(x, 180)) for x in v]
        return [r for r in cleaned if r][:MAX_RULES]

    @field_validator("voice", mode="before")
    @classmethod
    def _voice(cls, v):
        return dict(v) if isinstance(v, Mapping) else {}

    @field_validator("review_id", "external_review_id", mode="before")
    @classmethod
    def _external_id(cls, v):
        return trim_and_clip(v, 120) or None

    @classmethod
    def from_body(cls, body) -> "DraftRequest":
        if not isinstance(body, Mapping):
            raise InputValidationError("Invalid JSON body")
        try:
            return cls.model_validate(dict(body))
        except ValidationError as exc:
            err = exc.errors()[0]
            cause = (err.get("ctx") or {}).get("error")
            raise InputValidationError(str(cause) if cause else err["msg"]) from exc

    def to_review(self) -> ReviewInput:
        return ReviewInput(
            text=self.review_text,
            rating=self.rating,
            business_name=self.business_name,
            reviewer_language=self.language,
        )
