import os, re, json, uuid, logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import InputValidationError
from .models import OrgReplySettings, SampleRecord, clean_language
from .text import collapse_whitespace, trim_and_clip

logger = logging.getLogger(__name__)

DB_URL = os.getenv('REPLYDRAFT_DB_URL', 'sqlite:///reply_drafts.sqlite')
engine = create_engine(DB_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()

SAMPLE_LIST_LIMIT = 50
EVENT_TYPES = ("drafted", "copied", "posted")


class VoiceSample(Base):
    __tablename__ = "voice_samples"
    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    organization_id = Column(String(64), nullable=False, index=True)
    sample_text = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)


class OrgSettings(Base):
    __tablename__ = "org_settings"
    organization_id = Column(String(64), primary_key=True)
    owner_language = Column(String(12), nullable=False, default="en")
    reply_tone = Column(String(40), nullable=False, default="warm")
    reply_signature = Column(String(80), nullable=True)


class OrgVoiceProfile(Base):
    __tablename__ = "org_voice_profiles"
    organization_id = Column(String(64), primary_key=True)
    reply_as = Column(String(16), nullable=True)
    tone = Column(String(16), nullable=True)
    brevity = Column(String(16), nullable=True)
    formality = Column(String(16), nullable=True)
    things_to_avoid = Column(Text, nullable=True)  # json list
    allow_exclamation = Column(Boolean, nullable=True)


class DraftAudit(Base):
    __tablename__ = "draft_audits"
    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String(64), nullable=False, index=True)
    rating = Column(Integer, nullable=True)
    review_hash = Column(String(64), nullable=False)
    prompt_fingerprint = Column(String(64), nullable=False)
    prompt_version = Column(String(32), nullable=False)
    banned_list_version = Column(String(32), nullable=False)
    model = Column(String(128), nullable=False)
    temperature = Column(Float, nullable=False)
    sample_count = Column(Integer, nullable=False, default=0)
    sample_ids = Column(Text, nullable=False, default="")
    review_id = Column(String(120), nullable=True)
    external_review_id = Column(String(120), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ReplyEvent(Base):
    __tablename__ = "reply_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(16), nullable=False)  # drafted|copied|posted
    review_id = Column(String(120), nullable=True)
    external_review_id = Column(String(120), nullable=True)
    rating = Column(Integer, nullable=True)
    reviewer_language = Column(String(12), nullable=True)
    owner_language = Column(String(12), nullable=True)
    reply_text = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def get_session():
    return SessionLocal()


# ---- voice samples

SAMPLE_MIN_CHARS = 60
SAMPLE_MAX_CHARS = 600

WARNING_GENERIC_PHRASES = (
    "thank you", "thanks", "we appreciate", "great service", "great food",
    "come back soon", "hope to see you again", "valued guest", "we're thrilled", "we are thrilled",
)
CONCRETE_RE = re.compile(
    r"\b(staff|server|team|host|bar|wine|coffee|dessert|dish|meal|breakfast|dinner|lunch|"
    r"table|music|atmosphere|vibe|service|reservation)\b",
    re.IGNORECASE,
)
EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_RE = re.compile(r"\+?\d[\d\s().-]{6,}\d")
STAR_RATING_RE = re.compile(r"\b[1-5]\s?★")
URL_RE = re.compile(r"\bhttps?://|www\.", re.IGNORECASE)
ADDRESS_RE = re.compile(
    r"\b(street|st\.|avenue|ave\.|road|rd\.|suite|ste\.|apt|apartment|unit)(?!\w)|#\d+\b",
    re.IGNORECASE,
)


def clean_sample_text(text) -> str:
    sample_text = collapse_whitespace(text)
    if not sample_text:
        raise InputValidationError("Sample text is required.")
    if len(sample_text) < SAMPLE_MIN_CHARS:
        raise InputValidationError(f"Sample text is too short. Minimum is {SAMPLE_MIN_CHARS} characters.")
    if len(sample_text) > SAMPLE_MAX_CHARS:
        raise InputValidationError(f"Sample text is too long. Maximum is {SAMPLE_MAX_CHARS} characters.")
    return sample_text


def sample_warnings(text) -> List[str]:
    """Quality and privacy flags shown next to a stored sample."""
    t = trim_and_clip(text, SAMPLE_MAX_CHARS * 4)
    low = t.lower()
    warnings = []
    if len(t) < 120:
        warnings.append("too_short")
    if len(t) > 450:
        warnings.append("too_long")
    if len(t) < 160 and any(p in low for p in WARNING_GENERIC_PHRASES):
        warnings.append("too_generic")
    if len(t) < 200 and not CONCRETE_RE.search(t):
        warnings.append("low_specificity")
    if EMAIL_RE.search(t):
        warnings.append("contains_email")
    if sum(c.isdigit() for c in t) >= 7 and PHONE_RE.search(t) and not STAR_RATING_RE.search(t):
        warnings.append("contains_phone")
    if URL_RE.search(t):
        warnings.append("contains_url")
    if ADDRESS_RE.search(t):
        warnings.append("contains_address_hint")
    return warnings


def load_voice_samples(session, org_id: str, limit: int = SAMPLE_LIST_LIMIT) -> List[SampleRecord]:
    """Newest first; this is the read the curator sees."""
    rows = session.execute(
        select(VoiceSample)
        .where(VoiceSample.organization_id == org_id)
        .order_by(VoiceSample.created_at.desc())
        .limit(limit)
    ).scalars().all()
    return [SampleRecord(id=r.id, text=r.sample_text, created_at=r.created_at) for r in rows]


def list_voice_samples(session, org_id: str) -> List[VoiceSample]:
    return session.execute(
        select(VoiceSample)
        .where(VoiceSample.organization_id == org_id)
        .order_by(VoiceSample.created_at.asc())
        .limit(SAMPLE_LIST_LIMIT)
    ).scalars().all()


def add_voice_sample(session, org_id: str, text: str, created_at: Optional[datetime] = None) -> VoiceSample:
    sample_text = clean_sample_text(text)
    sample = VoiceSample(organization_id=org_id, sample_text=sample_text,
                         created_at=created_at or datetime.utcnow())
    session.add(sample)
    session.commit()
    return sample


def update_voice_sample(session, org_id: str, sample_id: str, text: str) -> Optional[VoiceSample]:
    sample_text = clean_sample_text(text)
    sample = session.get(VoiceSample, sample_id)
    if not sample or sample.organization_id != org_id:
        return None
    sample.sample_text = sample_text
    sample.updated_at = datetime.utcnow()
    session.commit()
    return sample


def delete_voice_sample(session, org_id: str, sample_id: str) -> bool:
    sample = session.get(VoiceSample, sample_id)
    if not sample or sample.organization_id != org_id:
        return False
    session.delete(sample)
    session.commit()
    return True


# ---- org settings and voice override

def load_org_settings(session, org_id: str) -> OrgReplySettings:
    row = session.get(OrgSettings, org_id)
    if not row:
        return OrgReplySettings()
    return OrgReplySettings.from_values(row.owner_language, row.reply_tone, row.reply_signature)


def save_org_settings(session, org_id: str, owner_language=None, reply_tone=None, reply_signature=None) -> OrgSettings:
    row = session.get(OrgSettings, org_id) or OrgSettings(organization_id=org_id)
    row.owner_language = clean_language(owner_language)
    row.reply_tone = trim_and_clip(reply_tone, 40) or "warm"
    row.reply_signature = trim_and_clip(reply_signature, 80) or None
    session.add(row)
    session.commit()
    return row


def load_voice_override(session, org_id: str) -> Dict[str, Any]:
    row = session.get(OrgVoiceProfile, org_id)
    if not row:
        return {}
    out = {
        "reply_as": row.reply_as,
        "tone": row.tone,
        "brevity": row.brevity,
        "formality": row.formality,
        "allow_exclamation": row.allow_exclamation,
    }
    if row.things_to_avoid:
        try:
            out["things_to_avoid"] = json.loads(row.things_to_avoid)
        except ValueError:
            logger.warning(f"Ignoring malformed things_to_avoid for org {org_id}")
    return {k: v for k, v in out.items() if v is not None}


def save_voice_profile(session, org_id: str, **fields) -> OrgVoiceProfile:
    row = session.get(OrgVoiceProfile, org_id) or OrgVoiceProfile(organization_id=org_id)
    for name in ("reply_as", "tone", "brevity", "formality"):
        if name in fields:
            setattr(row, name, fields[name])
    if isinstance(fields.get("allow_exclamation"), bool):
        row.allow_exclamation = fields["allow_exclamation"]
    if isinstance(fields.get("things_to_avoid"), (list, tuple)):
        row.things_to_avoid = json.dumps([str(x) for x in fields["things_to_avoid"]])
    session.add(row)
    session.commit()
    return row


# ---- audit and reply events

def record_draft_audit(session, org_id: str, entry: Dict[str, Any]) -> DraftAudit:
    row = DraftAudit(
        organization_id=org_id,
        rating=entry.get("rating_rounded"),
        review_hash=entry["review_hash"],
        prompt_fingerprint=entry["prompt_fingerprint"],
        prompt_version=entry["prompt_version"],
        banned_list_version=entry["banned_list_version"],
        model=entry["model"],
        temperature=entry["temperature"],
        sample_count=entry.get("sample_count", 0),
        sample_ids=",".join(entry.get("sample_ids", ())),
        review_id=entry.get("review_id"),
        external_review_id=entry.get("external_review_id"),
    )
    session.add(row)
    session.commit()
    return row


def record_reply_event(session, org_id: str, event_type: str, rating=None, reply_text=None,
                       review_id=None, external_review_id=None,
                       reviewer_language=None, owner_language=None) -> ReplyEvent:
    if event_type not in EVENT_TYPES:
        raise ValueError("event_type must be drafted|copied|posted")
    try:
        r = float(rating) if rating is not None else None
    except (TypeError, ValueError):
        r = None
    row = ReplyEvent(
        organization_id=org_id,
        event_type=event_type,
        review_id=trim_and_clip(review_id, 120) or None,
        external_review_id=trim_and_clip(external_review_id, 120) or None,
        rating=round(r) if r is not None and 1 <= r <= 5 else None,
        reviewer_language=trim_and_clip(reviewer_language, 12).lower() or None,
        owner_language=trim_and_clip(owner_language, 12).lower() or None,
        reply_text=trim_and_clip(reply_text, 2000) or None,
    )
    session.add(row)
    session.commit()
    return row
