import re
from typing import AbstractSet, Iterator, List

EMOJI_RE = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF\U0001F1E6-\U0001F1FF\ufe0f\u200d]")
QUOTE_RE = re.compile('["\u201c\u201d\u2018\u2019\u201e\u00ab\u00bb]')
WHITESPACE_RE = re.compile(r"\s+")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
# ASCII letters/digits plus the Latin-1 accented letters (skipping × and ÷)
NON_TOKEN_RE = re.compile("[^a-z0-9\u00df-\u00f6\u00f8-\u00ff]+")

MAX_TOKENS = 250


def trim_and_clip(text, max_len: int) -> str:
    if not isinstance(text, str):
        return ""
    return text.strip()[:max(0, max_len)]


def collapse_whitespace(text) -> str:
    if not isinstance(text, str):
        return ""
    return WHITESPACE_RE.sub(" ", text).strip()


def strip_emoji(text) -> str:
    if not isinstance(text, str):
        return ""
    return EMOJI_RE.sub("", text)


def strip_quote_marks(text) -> str:
    if not isinstance(text, str):
        return ""
    return QUOTE_RE.sub("", text)


def split_sentences(text) -> Iterator[str]:
    """Yield non-empty trimmed sentences; call again to restart."""
    if not isinstance(text, str):
        return
    for part in SENTENCE_SPLIT_RE.split(text.strip()):
        part = part.strip()
        if part:
            yield part


def limit_sentences(text, n: int) -> str:
    if not isinstance(text, str):
        return ""
    parts = list(split_sentences(text))
    if len(parts) <= n:
        return text
    return " ".join(parts[:max(0, n)])


def word_count(text) -> int:
    if not isinstance(text, str):
        return 0
    return len(text.split())


def tokenize(text) -> List[str]:
    if not isinstance(text, str):
        return []
    tokens = NON_TOKEN_RE.sub(" ", text.lower()).split()
    return tokens[:MAX_TOKENS]


def jaccard_similarity(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    if not a and not b:
        return 1.0
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def tidy_punctuation(text) -> str:
    """Clean up spacing and stray punctuation left behind by phrase removal."""
    if not isinstance(text, str):
        return ""
    t = re.sub(r"\s+([,.;:!?])", r"\1", text)
    t = re.sub(r"[,;:]+(?=[.!?])", "", t)
    t = re.sub(r"([.!?])(?:\s*[.,;:])+", r"\1", t)
    t = re.sub(r"^[\s,.;:!?]+", "", t)
    return collapse_whitespace(t)
