import logging
import re
from typing import Callable, Iterable, List, Optional

from .constants import GENERIC_PHRASES
from .models import CuratedVoiceSet, SampleRecord, VoiceSampleCandidate
from .text import (
    collapse_whitespace,
    jaccard_similarity,
    split_sentences,
    strip_emoji,
    strip_quote_marks,
    tokenize,
    trim_and_clip,
)

logger = logging.getLogger(__name__)

MAX_RECORDS = 50
HARD_MAX_ITEMS = 12
SEPARATOR_COST = 10
SIMILARITY_THRESHOLD = 0.78

WEIGHTS = {
    "anti_template": 0.48,
    "length": 0.26,
    "specificity": 0.18,
    "sentence_count": 0.08,
}

MIN_LEN = 40
IDEAL_LOW = 120
IDEAL_HIGH = 280
HARD_MAX_LEN = 420
LENGTH_FLOOR = 0.35

TEMPLATE_PENALTY = 0.35
PROMO_PENALTY = 0.25
EXCLAMATION_PENALTY = 0.2

PROMO_RE = re.compile(
    r"(\b(discount|promo(tion)?|coupon|sale|deal|limited time|book now|order now|"
    r"visit our website|follow us|descuento|oferta|promoção|desconto|réduction)\b|\d+\s?% off)",
    re.IGNORECASE,
)
DIGIT_RE = re.compile(r"\d")
# a capitalized word that is not the first word of a sentence, e.g. a name or dish
PROPER_WORD_RE = re.compile(r"(?<=[a-zà-ÿ0-9,;:] )[A-ZÀ-Þ][a-zà-ÿ]+")
TIME_RE = re.compile(
    r"\b(morning|afternoon|evening|tonight|today|yesterday|weekend|"
    r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"breakfast|brunch|lunch|dinner|"
    r"mañana|tarde|noche|sábado|domingo|manhã|noite|soir|matin|samedi|dimanche|"
    r"\d{1,2}(:\d{2})?\s?(am|pm))\b",
    re.IGNORECASE,
)


def clean_sample(text: str, max_chars: int) -> str:
    clipped = trim_and_clip(text, max_chars)
    return collapse_whitespace(strip_emoji(strip_quote_marks(clipped)))


def length_score(n: int) -> float:
    if n < MIN_LEN:
        return 0.0
    if n < IDEAL_LOW:
        return (n - MIN_LEN) / (IDEAL_LOW - MIN_LEN)
    if n <= IDEAL_HIGH:
        return 1.0
    if n >= HARD_MAX_LEN:
        return LENGTH_FLOOR
    decay = (n - IDEAL_HIGH) / (HARD_MAX_LEN - IDEAL_HIGH)
    return 1.0 - decay * (1.0 - LENGTH_FLOOR)


def specificity_score(text: str, tokens: List[str]) -> float:
    if not tokens:
        return 0.0
    ratio = len(set(tokens)) / len(tokens)
    score = 0.7 * min(1.0, max(0.0, (ratio - 0.35) / 0.65))
    if DIGIT_RE.search(text):
        score += 0.1
    if PROPER_WORD_RE.search(text):
        score += 0.1
    if TIME_RE.search(text):
        score += 0.1
    return min(1.0, score)


def anti_template_score(text: str) -> float:
    low = text.lower()
    score = 1.0
    score -= TEMPLATE_PENALTY * sum(1 for p in GENERIC_PHRASES if p in low)
    if PROMO_RE.search(text):
        score -= PROMO_PENALTY
    if text.count("!") >= 2:
        score -= EXCLAMATION_PENALTY
    return max(0.0, min(1.0, score))


def sentence_count_score(text: str) -> float:
    count = sum(1 for _ in split_sentences(text))
    if 1 <= count <= 3:
        return 1.0
    if count == 4:
        return 0.7
    return 0.45


def score_sample(text: str, tokens: Optional[List[str]] = None) -> float:
    if tokens is None:
        tokens = tokenize(text)
    score = (
        WEIGHTS["anti_template"] * anti_template_score(text)
        + WEIGHTS["length"] * length_score(len(text))
        + WEIGHTS["specificity"] * specificity_score(text, tokens)
        + WEIGHTS["sentence_count"] * sentence_count_score(text)
    )
    return round(max(0.0, min(1.0, score)), 6)


class VoiceCurator:
    """Select a bounded, diverse reference set from raw voice samples."""

    def __init__(self, max_items: int = 5, max_chars_each: int = 420, max_total_chars: int = 1800):
        self.max_items = max(0, min(int(max_items), HARD_MAX_ITEMS))
        self.max_chars_each = max(0, int(max_chars_each))
        self.max_total_chars = max(0, int(max_total_chars))

    def candidates(self, records: Iterable[SampleRecord]) -> List[VoiceSampleCandidate]:
        out = []
        for i, record in enumerate(records):
            if i >= MAX_RECORDS:
                break
            cleaned = clean_sample(record.text, self.max_chars_each)
            if not cleaned:
                continue
            tokens = tokenize(cleaned)
            out.append(VoiceSampleCandidate(
                id=record.id,
                raw_text=record.text,
                cleaned_text=cleaned,
                score=score_sample(cleaned, tokens),
                token_set=frozenset(tokens),
                created_at=record.created_at,
            ))
        return out

    def curate(self, records: Iterable[SampleRecord]) -> CuratedVoiceSet:
        ranked = sorted(
            self.candidates(records),
            key=lambda c: (c.score, c.created_at.timestamp() if c.created_at else float("-inf")),
            reverse=True,
        )

        picked: List[VoiceSampleCandidate] = []
        total = 0
        for cand in ranked:
            if len(picked) >= self.max_items:
                break
            cost = len(cand.cleaned_text) + SEPARATOR_COST
            if total + cost > self.max_total_chars:
                continue
            if any(jaccard_similarity(cand.token_set, p.token_set) >= SIMILARITY_THRESHOLD for p in picked):
                continue
            picked.append(cand)
            total += cost

        return CuratedVoiceSet(
            texts=tuple(c.cleaned_text for c in picked),
            sample_ids=tuple(c.id for c in picked),
            total_chars=total,
        )

    def curate_from(self, fetch: Callable[[], Iterable[SampleRecord]]) -> CuratedVoiceSet:
        """Curate from a store read; a failing store means no samples."""
        try:
            records = list(fetch())
        except Exception as e:
            logger.warning(f"Voice sample load failed, drafting without samples: {e}")
            return CuratedVoiceSet()
        return self.curate(records)
