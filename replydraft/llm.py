import os, re, logging
from typing import List, Optional

import requests

from .errors import UpstreamError
from .models import GenerationRequest

logger = logging.getLogger(__name__)

BASE_URL = os.getenv('LLM_BASE_URL', 'https://api.openai.com/v1')
MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
API_KEY = os.getenv('LLM_API_KEY', '')
DRY_RUN = os.getenv('LLM_DRY_RUN', 'true').lower() == 'true'
TIMEOUT = int(os.getenv('LLM_TIMEOUT', '60'))

RATING_RE = re.compile(r"^RATING: (\d)/5$", re.MULTILINE)
REVIEW_RE = re.compile(r'REVIEW:\n"""\n(.*?)\n"""', re.DOTALL)

TOPIC_KEYWORDS = {
    "the wait": ["wait", "waited", "queue", "slow", "late", "minutes", "espera", "attente"],
    "the food": ["food", "dish", "taste", "cold", "burger", "pizza", "coffee", "comida", "plat"],
    "the service": ["service", "staff", "waiter", "server", "rude", "friendly", "atención", "serviço"],
    "the cleanliness": ["dirty", "clean", "bathroom", "table", "sucio", "sujo"],
    "the portions": ["portion", "small", "huge", "porción", "porção"],
    "the price": ["price", "expensive", "cheap", "value", "precio", "preço"],
    "the atmosphere": ["music", "noisy", "vibe", "ambience", "loud", "ambiente"],
}


def _topic(text: str) -> str:
    low = text.lower()
    for topic, words in TOPIC_KEYWORDS.items():
        if any(w in low for w in words):
            return topic
    return "your visit"


def _heuristic_draft(request: GenerationRequest) -> str:
    m = RATING_RE.search(request.prompt)
    rating = int(m.group(1)) if m else 3
    m = REVIEW_RE.search(request.prompt)
    topic = _topic(m.group(1) if m else "")

    if rating <= 2:
        return (f"Sorry about {topic}, that is not how a visit here should go. "
                "If you are up for it, message us directly so we can talk it through.")
    if rating == 3:
        return (f"Glad parts of the visit worked, and fair point about {topic}. "
                "We'll pass it on to the team.")
    return (f"Really glad {topic} stood out for you. "
            "The team will be happy to hear it.")


def generate_reply(request: GenerationRequest, correction: Optional[List[str]] = None, model: str = MODEL) -> str:
    """Return one candidate reply; any non-success response raises UpstreamError."""
    if DRY_RUN:
        return _heuristic_draft(request)

    headers = {"Authorization": f"Bearer {API_KEY}", "Content-Type": "application/json"}
    messages = [
        {"role": "system", "content": request.system},
        {"role": "user", "content": request.prompt},
    ]
    if correction:
        quoted = ", ".join(f'"{h}"' for h in correction)
        messages.append({"role": "user", "content": (
            f"Your last reply violated the banned phrases list. It included: {quoted}. "
            "Rewrite the reply without any of those phrases (or close variants). "
            "Keep it natural and short. Output ONLY the reply text."
        )})
    payload = {
        "model": model,
        "messages": messages,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "frequency_penalty": 0.25,
        "presence_penalty": 0.1,
    }

    url = f"{BASE_URL}/chat/completions"
    try:
        r = requests.post(url, headers=headers, json=payload, timeout=TIMEOUT)
    except requests.RequestException as e:
        raise UpstreamError(f"LLM request failed: {e}") from e

    if not r.ok:
        try:
            body = r.json()
        except ValueError:
            body = r.text
        logger.warning(f"LLM upstream returned {r.status_code}")
        raise UpstreamError("LLM upstream error", upstream_status=r.status_code, upstream_body=body)

    try:
        content = r.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise UpstreamError(f"Malformed LLM response: {e}", upstream_status=r.status_code) from e
    return str(content or "")
