from typing import Dict, Iterable, List, Optional

from .constants import DEFAULT_POLICY, LANGUAGE_INSTRUCTIONS, SYSTEM_PROMPT, PolicyConfig
from .models import (
    TONES,
    CuratedVoiceSet,
    GenerationRequest,
    OrgReplySettings,
    ReviewInput,
    VoiceProfile,
)
from .text import collapse_whitespace, trim_and_clip, word_count

MAX_TOKENS = 260
MAX_AVOID_PHRASES = 60

RATING_GUIDANCE: Dict[int, List[str]] = {
    1: [
        "The reviewer had a bad experience. Acknowledge the specific problem calmly in one sentence.",
        "Apologize at most once. Never apologize twice.",
        "Do NOT invent excuses (being busy, short-staffed, a rush, supplier issues) unless the review mentions them.",
        "If inviting follow-up, keep it to ONE short human line.",
        "Do NOT be playful or joking. Do NOT argue with the reviewer.",
    ],
    2: [
        "The reviewer was disappointed. Name the specific problem plainly without minimizing it.",
        "Apologize at most once. Never apologize twice.",
        "Do NOT invent excuses (being busy, short-staffed, a rush, supplier issues) unless the review mentions them.",
        "Mention anything they liked only if they actually said it.",
        "Do NOT be playful or joking. Do NOT argue with the reviewer.",
    ],
    3: [
        "The review is mixed. Thank them briefly for the specific thing that worked.",
        "Address the main criticism in one plain sentence, at most one apology.",
        "Do NOT promise changes you cannot guarantee.",
    ],
    4: [
        "The reviewer is happy. Pick up the specific detail they enjoyed.",
        "If they mentioned a small gripe, acknowledge it lightly without apologizing repeatedly.",
        "Do NOT repeat a generic invitation to come back.",
    ],
    5: [
        "The reviewer loved it. Respond to the specific detail they praised.",
        "Close with a simple, low-pressure welcome back (not salesy), at most once.",
    ],
}

BASE_MUST_NOT = [
    "Do NOT mention AI, automation, internal processes, investigations, or policies.",
    "Do NOT offer refunds, discounts, or compensation.",
    "Do NOT promise future changes or guarantees.",
    "Do NOT admit legal fault.",
    "Do NOT quote the review text.",
    "No emojis.",
]

REPLY_AS_LINES = {
    "owner": 'Reply as the owner using "I".',
    "manager": 'Reply as the manager using "I".',
    "we": 'Reply as the business using "we".',
}

TONE_LINES = {
    "warm": "Tone: warm, real, calm.",
    "neutral": "Tone: steady, human, not overly emotional.",
    "direct": "Tone: direct, respectful, concise.",
    "playful": "Tone: lightly playful but still respectful.",
}


def sentence_budget(review_text: str) -> int:
    words = word_count(review_text)
    if words > 120:
        return 4
    if words > 60:
        return 3
    return 2


def rating_guidance(rating: int) -> List[str]:
    return list(RATING_GUIDANCE[min(5, max(1, int(rating)))])


def clamp_tone(tone: Optional[str], rating: int) -> Optional[str]:
    """Never sound playful about a bad experience."""
    if tone == "playful" and rating <= 2:
        return "neutral"
    return tone


def language_instruction(tag: str) -> str:
    raw = tag or "en"
    key = raw.lower()
    if key in LANGUAGE_INSTRUCTIONS:
        return LANGUAGE_INSTRUCTIONS[key]
    return f"Write in the owner's preferred language ({raw})."


def sampling_temperature(rating: int) -> float:
    return 0.15 if rating <= 2 else 0.22


class ConstraintCompiler:
    def __init__(self, policy: PolicyConfig = DEFAULT_POLICY):
        self.policy = policy

    def voice_lines(
        self,
        voice: VoiceProfile,
        settings: OrgReplySettings,
        tone: str,
    ) -> List[str]:
        lines = [REPLY_AS_LINES[voice.reply_as], TONE_LINES[tone]]
        lines.append("Brevity: short." if voice.brevity == "short" else "Brevity: medium-short.")
        if voice.formality == "casual":
            lines.append("Formality: casual (still respectful).")
        else:
            lines.append("Formality: professional (not stiff).")
        if settings.reply_signature:
            lines.append(f"Signature: end with a final line '— {settings.reply_signature}'.")
        else:
            lines.append("Signature: none.")
        if voice.allow_exclamation:
            lines.append("Exclamation points allowed sparingly (max 1), only if it feels natural.")
        else:
            lines.append("No exclamation points.")
        return lines

    def banned_block(self, voice: VoiceProfile) -> List[str]:
        lines = [f"- {p}" for p in self.policy.banned_phrases]
        extra = sorted(p for p in voice.avoid_phrases if p not in self.policy.banned_phrases)
        lines.extend(f"- {p}" for p in extra[:MAX_AVOID_PHRASES])
        return lines

    def samples_block(self, samples: CuratedVoiceSet) -> str:
        if samples.is_empty:
            return ""
        lines = [
            "VOICE SAMPLES (STYLE REFERENCE ONLY):",
            "- These are examples of how the owner writes. Match cadence, word choice and vibe.",
            "- Do NOT copy any sentence verbatim. Do NOT reuse unique phrases.",
        ]
        lines.extend(f"- SAMPLE {i}: {s}" for i, s in enumerate(samples.texts, 1))
        return "\n".join(lines)

    def compile(
        self,
        review: ReviewInput,
        voice: VoiceProfile,
        settings: OrgReplySettings,
        samples: Optional[CuratedVoiceSet] = None,
        tone_override: Optional[str] = None,
        rules: Iterable[str] = (),
    ) -> GenerationRequest:
        samples = samples or CuratedVoiceSet()
        rating = review.rating
        budget = sentence_budget(review.text)

        requested = tone_override if tone_override in TONES else None
        tone = clamp_tone(requested or voice.tone, rating)

        extra_rules = []
        for rule in rules or ():
            r = collapse_whitespace(trim_and_clip(rule, 180))
            if r:
                extra_rules.append(r)

        sections = [
            "You are writing a public reply to a customer review.",
            "VOICE PROFILE:\n" + "\n".join(f"- {l}" for l in self.voice_lines(voice, settings, tone)),
            "HARD CONSTRAINTS (follow exactly):\n"
            f"- Max sentences: {budget}\n"
            "- Every contraction keeps its apostrophe (don't, we're, weren't).\n"
            "- The first sentence MUST reference one concrete detail from the review (dish, staff moment, timing, service detail).\n"
            "- Do not invent details. Only reference what the reviewer actually wrote.\n"
            "- Output ONLY the reply text (no labels, no bullet points).",
            "MUST NOT DO:\n" + "\n".join(f"- {l}" for l in BASE_MUST_NOT),
            "BANNED PHRASES (do not use any of these, even partially):\n" + "\n".join(self.banned_block(voice)),
            "RATING GUIDANCE:\n" + "\n".join(f"- {l}" for l in rating_guidance(rating)),
        ]

        block = self.samples_block(samples)
        if block:
            sections.append(block)
        if extra_rules:
            sections.append("ADDITIONAL RULES (highest priority):\n" + "\n".join(f"- {r}" for r in extra_rules))

        sections.append(
            "LANGUAGE:\n"
            f"- {language_instruction(settings.owner_language)}\n"
            "- Draft in the OWNER language."
        )
        sections.append(
            f"BUSINESS: {review.business_name}\n"
            f"RATING: {rating}/5\n\n"
            f'REVIEW:\n"""\n{review.text}\n"""'
        )
        sections.append("Return ONLY the reply text.")

        return GenerationRequest(
            system=SYSTEM_PROMPT,
            prompt="\n\n".join(sections),
            sentence_budget=budget,
            temperature=sampling_temperature(rating),
            max_tokens=MAX_TOKENS,
            prompt_version=self.policy.prompt_version,
            banned_list_version=self.policy.banned_list_version,
        )
