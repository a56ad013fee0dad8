import re
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .constants import DEFAULT_POLICY, PolicyConfig
from .text import (
    collapse_whitespace,
    limit_sentences,
    split_sentences,
    strip_emoji,
    strip_quote_marks,
    tidy_punctuation,
)

MAX_REPLY_CHARS = 900
MAX_BANNED_HITS = 6

_I = re.IGNORECASE

INWORD_APOSTROPHE_RE = re.compile(r"(?<=\w)[‘’](?=\w)")

OPENER_PATTERNS = [re.compile(p, _I) for p in (
    r"^¡?\s*(thank you|thanks)( so much| very much)?"
    r"( for (your|the|this)( kind| lovely| great| honest| detailed| wonderful)? "
    r"(review|feedback|words|comments?|visit|note|stars))?\s*[,!.]\s*",
    r"^we (really |truly )?appreciate (you|your|the|it)"
    r"( (taking the time|feedback|review|kind words|comments?|visit))?\s*[,!.]\s*",
    r"^we(?:'| a)?re (so |very |really |truly )?(sorry|glad|happy)( to hear( that| this)?)?\s*[,!.]\s*",
    r"^i(?:'| a)?m (so |very |really |truly )?(sorry|glad|happy)( to hear( that| this)?)?\s*[,!.]\s*",
    r"^¡?\s*(muchas )?gracias( por (tu|su|la|el)( linda| amable| bonita)? "
    r"(reseña|comentario|opinión|visita|valoración))?\s*[,!.]\s*",
    r"^(muito )?obrigad[oa]s?( pel[ao] (sua |seu )?(avaliação|comentário|visita|feedback))?\s*[,!.]\s*",
    r"^merci( beaucoup)?( pour (votre|ton|cet?) (avis|commentaire|visite|retour))?\s*[,!.]\s*",
    r"^grazie( mille)?( per (la )?(tua |sua )?(recensione|visita))?\s*[,!.]\s*",
    r"^(vielen )?dank( für (ihre|deine|die) (bewertung|rückmeldung|worte))?\s*[,!.]\s*",
)]

HEDGE_REPLACEMENTS = [(re.compile(p, _I), r) for p, r in (
    (r"\bwe aim to\b", "we want to"),
    (r"\bwe strive to\b", "we try to"),
    (r"\bwe endeavou?r to\b", "we try to"),
    (r"\bwe seek to\b", "we want to"),
)]

HEDGE_REMOVALS = [re.compile(p, _I) for p in (
    r"\b(we|i) take (this|it|that|these|your (feedback|concerns?|comments?|review))"
    r"( issue| matter)? (very |extremely |really )?seriously\b(,? and\b)?",
    r"\brest assured(,? that)?,?",
    r"\bplease know that\b",
)]

ELISIONS: Dict[str, str] = {
    "dont": "don't",
    "doesnt": "doesn't",
    "didnt": "didn't",
    "isnt": "isn't",
    "arent": "aren't",
    "wasnt": "wasn't",
    "werent": "weren't",
    "havent": "haven't",
    "hasnt": "hasn't",
    "hadnt": "hadn't",
    "wouldnt": "wouldn't",
    "couldnt": "couldn't",
    "shouldnt": "shouldn't",
    "cant": "can't",
    "wont": "won't",
    "youre": "you're",
    "theyre": "they're",
    "weve": "we've",
    "youve": "you've",
    "theyve": "they've",
    "youll": "you'll",
    "theyll": "they'll",
    "itll": "it'll",
    "thats": "that's",
    "whats": "what's",
    "theres": "there's",
    "wouldve": "would've",
    "couldve": "could've",
    "shouldve": "should've",
}
ELISION_RE = re.compile(r"\b(" + "|".join(ELISIONS) + r")\b", _I)

LEADING_LOWER_RE = re.compile(r"^[a-zß-öø-ÿ]")

EXCUSE_RE = re.compile(
    r"\b(busy|busier|busiest|understaffed|under-staffed|short[- ]?staffed|short[- ]?handed|"
    r"slammed|swamped|overwhelmed|staff(ing)? shortage|ocupad[oa]s|falta de personal|"
    r"sobrecarregad[oa]s?|lotad[oa]|débordés?|sous-effectif|überlastet|personalmangel)\b",
    _I,
)

APOLOGY_RE = re.compile(
    r"\b(sorry|apologi[sz]e[sd]?|apolog(y|ies)|lo siento|lo sentimos|lamentamos|lamento|"
    r"disculp\w*|desculp\w*|sentimos muito|désolée?s?|nous (nous )?excusons|toutes nos excuses|"
    r"scus\w+|ci dispiace|mi dispiace|entschuldig\w*|tut (uns|mir) leid)\b",
    _I,
)

CLOSER_RE = re.compile(
    r"(hope to (see|welcome|have) you (again|back|soon)|"
    r"look(ing)? forward to (seeing|welcoming|having|serving) you|"
    r"come (back|again) soon|see you (again|soon|next time)|"
    r"can'?t wait to (see|welcome|have) you|visit us again|"
    r"esperamos (verte|volver a verte|tenerte|vê-lo|vê-la|te ver)|hasta pronto|te esperamos|"
    r"até (breve|logo|a próxima)|volte(m)? sempre|à bientôt|au plaisir de vous revoir|"
    r"a presto|speriamo di rivederti|bis bald|wir freuen uns auf (ihren|deinen) (nächsten )?besuch)",
    _I,
)

BANNED_TELLS = [
    ("we appreciate", re.compile(r"\bwe\s+appreciate\b", _I)),
    ("we strive", re.compile(r"\bwe\s+strive\b", _I)),
    ("enhance our", re.compile(r"\benhance\s+our\b", _I)),
    ("valued (customer|guest)", re.compile(r"\bvalued\s+(customer|guest)\b", _I)),
]


class EnforcementContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    rating: int
    review_text: str = ""
    sentence_budget: int = 2
    allow_exclamation: bool = False
    reply_signature: Optional[str] = None
    language: str = "en"


class EnforcementResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    changed_stages: Tuple[str, ...] = ()

    @property
    def closer_stripped(self) -> bool:
        return "strip_closers" in self.changed_stages


Stage = Callable[[str, EnforcementContext], str]


def violates_banned(text: str, banned: Iterable[str]) -> List[str]:
    low = text.lower()
    hits = []
    for b in banned:
        if b and b.lower() in low:
            hits.append(b)
    return hits


def enforce_reply_limits(reply: str, max_len: int = MAX_REPLY_CHARS) -> str:
    return reply.strip()[:max_len]


def _match_case(replacement: str, matched: str) -> str:
    if matched[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _drop_sentences(text: str, drop: Callable[[int, str], bool]) -> str:
    parts = list(split_sentences(text))
    kept = [s for i, s in enumerate(parts) if not drop(i, s)]
    if len(kept) == len(parts):
        return text
    return " ".join(kept)


def normalize_surface(text: str, ctx: EnforcementContext) -> str:
    t = enforce_reply_limits(text)
    t = INWORD_APOSTROPHE_RE.sub("'", t)
    return collapse_whitespace(strip_emoji(strip_quote_marks(t)))


def strip_templated_openers(text: str, ctx: EnforcementContext) -> str:
    t = text
    changed = True
    while changed and t:
        changed = False
        for pattern in OPENER_PATTERNS:
            stripped = pattern.sub("", t, count=1).strip()
            if stripped != t:
                t, changed = stripped, True
    return t


def sanitize_corporate_phrasing(text: str, ctx: EnforcementContext) -> str:
    t = text
    for pattern, replacement in HEDGE_REPLACEMENTS:
        t = pattern.sub(lambda m, r=replacement: _match_case(r, m.group(0)), t)
    for pattern in HEDGE_REMOVALS:
        t = pattern.sub("", t)
    return tidy_punctuation(t)


def repair_elisions(text: str, ctx: EnforcementContext) -> str:
    # english contractions only; "dont" is a French word
    if not ctx.language.lower().startswith("en"):
        return text
    return ELISION_RE.sub(lambda m: _match_case(ELISIONS[m.group(0).lower()], m.group(0)), text)


def capitalize_first(text: str, ctx: EnforcementContext) -> str:
    if LEADING_LOWER_RE.match(text):
        return text[0].upper() + text[1:]
    return text


def drop_invented_excuses(text: str, ctx: EnforcementContext) -> str:
    if ctx.rating > 2 or EXCUSE_RE.search(ctx.review_text or ""):
        return text
    result = _drop_sentences(text, lambda i, s: bool(EXCUSE_RE.search(s)))
    return result or text


def dedupe_apologies(text: str, ctx: EnforcementContext) -> str:
    if ctx.rating > 3:
        return text
    seen = []

    def drop(i, sentence):
        if not APOLOGY_RE.search(sentence):
            return False
        seen.append(i)
        return len(seen) > 1

    return _drop_sentences(text, drop)


def strip_closers(text: str, ctx: EnforcementContext) -> str:
    if ctx.rating < 4 or sum(1 for _ in split_sentences(text)) <= 2:
        return text
    result = _drop_sentences(text, lambda i, s: bool(CLOSER_RE.search(s)))
    return result or text


def enforce_sentence_budget(text: str, ctx: EnforcementContext) -> str:
    return limit_sentences(text, ctx.sentence_budget)


def enforce_exclamations(text: str, ctx: EnforcementContext) -> str:
    if ctx.allow_exclamation:
        head, bang, tail = text.partition("!")
        t = head + bang + tail.replace("!", ".")
    else:
        t = text.replace("¡", "").replace("!", ".")
    t = re.sub(r"([.!?])(?:\s*\.)+", r"\1", t)
    return collapse_whitespace(t)


def append_signature(text: str, ctx: EnforcementContext) -> str:
    sig = (ctx.reply_signature or "").strip()[:80]
    if not sig or not text:
        return text
    if f"— {sig}".lower() in text.lower():
        return text
    return f"{text.strip()}\n— {sig}"


STAGES: Tuple[Tuple[str, Stage], ...] = (
    ("normalize_surface", normalize_surface),
    ("strip_templated_openers", strip_templated_openers),
    ("sanitize_corporate_phrasing", sanitize_corporate_phrasing),
    ("repair_elisions", repair_elisions),
    ("capitalize_first", capitalize_first),
    ("drop_invented_excuses", drop_invented_excuses),
    ("dedupe_apologies", dedupe_apologies),
    ("strip_closers", strip_closers),
    ("enforce_sentence_budget", enforce_sentence_budget),
    ("enforce_exclamations", enforce_exclamations),
    ("append_signature", append_signature),
)

# dropping a sentence can expose a new opener, so these repeat until stable
BODY_STAGES = frozenset({
    "strip_templated_openers",
    "sanitize_corporate_phrasing",
    "repair_elisions",
    "capitalize_first",
    "drop_invented_excuses",
    "dedupe_apologies",
    "strip_closers",
})
MAX_BODY_PASSES = 5


def detach_signature(text: str, signature: Optional[str]) -> str:
    """Remove a trailing signature line so body stages never see it."""
    sig = (signature or "").strip()[:80]
    if not sig or not isinstance(text, str):
        return text
    pattern = re.compile(r"(?:(?:^|\n)\s*[—–-]+|\s+[—–])\s*" + re.escape(sig) + r"\s*$", _I)
    return pattern.sub("", text)


class EnforcementPipeline:
    def __init__(self, policy: PolicyConfig = DEFAULT_POLICY, stages: Tuple[Tuple[str, Stage], ...] = STAGES):
        self.policy = policy
        self.stages = stages

    def _split(self):
        idx = [i for i, (name, _) in enumerate(self.stages) if name in BODY_STAGES]
        if not idx:
            return self.stages, (), ()
        first, last = idx[0], idx[-1] + 1
        return self.stages[:first], self.stages[first:last], self.stages[last:]

    def run(self, raw: str, ctx: EnforcementContext) -> EnforcementResult:
        text = detach_signature(raw if isinstance(raw, str) else "", ctx.reply_signature)
        changed: List[str] = []

        def apply(stages, t):
            for name, stage in stages:
                out = stage(t, ctx)
                if out != t and name not in changed:
                    changed.append(name)
                t = out
            return t

        head, body, tail = self._split()
        text = apply(head, text)
        for _ in range(MAX_BODY_PASSES):
            out = apply(body, text)
            if out == text:
                break
            text = out
        text = apply(tail, text)
        return EnforcementResult(text=text, changed_stages=tuple(changed))

    def find_banned_hits(self, text: str, avoid: Iterable[str] = ()) -> List[str]:
        """Banned-list phrases and generic tells still present in a draft."""
        hits = violates_banned(text, self.policy.banned_phrases)
        seen = {h.lower() for h in hits}
        for phrase in violates_banned(text, sorted(avoid)):
            if phrase.lower() not in seen:
                hits.append(phrase)
                seen.add(phrase.lower())
        for label, pattern in BANNED_TELLS:
            if pattern.search(text) and label not in seen:
                hits.append(label)
                seen.add(label)
        return hits[:MAX_BANNED_HITS]
