from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict

PROMPT_VERSION = "draft-prompt-v4"
BANNED_LIST_VERSION = "banned-v3"
ENFORCEMENT_VERSION = "enforce-v2"

# Injected verbatim into the prompt and re-checked after generation.
BANNED_PHRASES: Tuple[str, ...] = (
    # corporate / template-y
    "Thank you for your feedback",
    "We appreciate your feedback",
    "We appreciate your thoughts",
    "We appreciate your comments",
    "Thank you for taking the time",
    "Thank you for sharing",
    "We strive",
    "We will look into this",
    "We take this seriously",
    "Please accept our apologies",
    "valued customer",
    "valued guest",
    "did not meet expectations",
    "didn't meet expectations",
    "fell short",
    "we hear your",
    "it's disappointing to hear",
    "it's concerning to hear",
    "we'll keep that in mind",
    "refine our",
    "enhance our",
    # faux-empathy openers
    "we're sorry to hear",
    "we are sorry to hear",
    "it sounds like",
    # other languages
    "agradecemos sus comentarios",
    "agradecemos tu comentario",
    "valoramos su opinión",
    "agradecemos o seu feedback",
    "valorizamos sua opinião",
    "nous apprécions vos commentaires",
    "wir schätzen ihr feedback",
    "apprezziamo il tuo feedback",
)

# Generic review-reply phrasing; penalizes voice samples that read like templates.
GENERIC_PHRASES: Tuple[str, ...] = (
    "we appreciate your feedback",
    "thank you for your feedback",
    "thank you for taking the time",
    "thank you for your review",
    "thanks for your review",
    "we value your feedback",
    "your satisfaction is our",
    "we strive to",
    "we take this seriously",
    "valued customer",
    "valued guest",
    "please accept our apologies",
    "we look forward to serving you",
    "we hope to see you again",
    "gracias por tu reseña",
    "gracias por su comentario",
    "agradecemos sus comentarios",
    "obrigado pela sua avaliação",
    "agradecemos o seu feedback",
    "merci pour votre avis",
    "nous apprécions vos commentaires",
    "vielen dank für ihre bewertung",
    "grazie per la recensione",
)

LANGUAGE_INSTRUCTIONS: Dict[str, str] = {
    "en": "Write in English. Natural, human, non-corporate.",
    "es": "Write in Spanish. Natural Spanish, not a literal translation.",
    "pt": "Write in Portuguese. Natural Portuguese, not a literal translation.",
    "pt-br": "Write in Brazilian Portuguese. Natural Brazilian Portuguese, not a literal translation.",
    "fr": "Write in French. Natural French, not a literal translation.",
    "it": "Write in Italian. Natural Italian, not a literal translation.",
    "de": "Write in German. Natural German, not a literal translation.",
}

SYSTEM_PROMPT = (
    "You write short, human-sounding public review replies for local businesses. "
    "Follow constraints exactly. Output only the reply text."
)


class PolicyConfig(BaseModel):
    """Versioned, immutable policy shared by the compiler and the enforcement pipeline."""

    model_config = ConfigDict(frozen=True)

    banned_phrases: Tuple[str, ...] = BANNED_PHRASES
    prompt_version: str = PROMPT_VERSION
    banned_list_version: str = BANNED_LIST_VERSION
    enforcement_version: str = ENFORCEMENT_VERSION


DEFAULT_POLICY = PolicyConfig()
