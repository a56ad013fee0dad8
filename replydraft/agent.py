import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError

from .compiler import ConstraintCompiler
from .constants import DEFAULT_POLICY, PolicyConfig
from .curator import VoiceCurator
from .db import load_org_settings, load_voice_override, load_voice_samples, record_draft_audit
from .errors import EmptyDraftError, EntitlementError, UpstreamError
from .guardrails import EnforcementContext, EnforcementPipeline
from .llm import MODEL, generate_reply
from .models import DraftMeta, DraftReply, DraftRequest, DraftResponse, OrgReplySettings, resolve_voice_profile

logger = logging.getLogger(__name__)

Generator = Callable[..., str]


class DraftOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: DraftResponse
    draft: DraftReply


def _load_settings(session, org_id: str) -> OrgReplySettings:
    try:
        return load_org_settings(session, org_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Org settings unavailable for {org_id}, using defaults: {e}")
        return OrgReplySettings()


def _load_voice_override(session, org_id: str) -> Dict[str, Any]:
    try:
        return load_voice_override(session, org_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Voice profile unavailable for {org_id}, using defaults: {e}")
        return {}


def _record_audit(session, org_id: str, entry: Dict[str, Any]) -> None:
    try:
        record_draft_audit(session, org_id, entry)
    except Exception:
        session.rollback()
        logger.exception(f"Draft audit failed for org {org_id}")


def draft_reply(
    body: Dict[str, Any],
    org_id: str,
    session,
    generate: Generator = generate_reply,
    model: str = MODEL,
    policy: PolicyConfig = DEFAULT_POLICY,
    is_entitled: Optional[Callable[[str], bool]] = None,
    curator: Optional[VoiceCurator] = None,
) -> DraftOutcome:
    """Draft one reply for a review; raises a DraftError subclass on failure."""
    if is_entitled is not None and not is_entitled(org_id):
        raise EntitlementError()

    req = DraftRequest.from_body(body)
    review = req.to_review()

    settings = _load_settings(session, org_id)
    voice = resolve_voice_profile(settings.reply_tone, _load_voice_override(session, org_id), req.voice)

    def fetch_samples():
        try:
            return load_voice_samples(session, org_id)
        except SQLAlchemyError:
            session.rollback()
            raise

    samples = (curator or VoiceCurator()).curate_from(fetch_samples)

    gen_req = ConstraintCompiler(policy).compile(
        review, voice, settings, samples, tone_override=req.tone, rules=req.rules,
    )
    pipeline = EnforcementPipeline(policy)
    ctx = EnforcementContext(
        rating=review.rating,
        review_text=review.text,
        sentence_budget=gen_req.sentence_budget,
        allow_exclamation=voice.allow_exclamation,
        reply_signature=settings.reply_signature,
        language=settings.owner_language,
    )

    result = pipeline.run(generate(gen_req), ctx)
    hits: List[str] = pipeline.find_banned_hits(result.text, voice.avoid_phrases) if result.text else []
    regenerated = False
    if hits:
        logger.info(f"Draft hit banned phrases {hits}, regenerating once")
        try:
            retry = pipeline.run(generate(gen_req, correction=hits), ctx)
        except UpstreamError as e:
            logger.warning(f"Corrective regeneration failed, keeping first draft: {e}")
        else:
            if retry.text and not pipeline.find_banned_hits(retry.text, voice.avoid_phrases):
                result, regenerated = retry, True

    if not result.text:
        raise EmptyDraftError()

    draft = DraftReply(
        text=result.text,
        prompt_fingerprint=gen_req.fingerprint(model),
        enforcement_version=policy.enforcement_version,
        sample_count=len(samples.sample_ids),
        sample_ids=samples.sample_ids,
        diagnostics={
            "changed_stages": list(result.changed_stages),
            "closer_stripped": result.closer_stripped,
            "banned_hits": hits,
            "regenerated": regenerated,
            "sentence_budget": gen_req.sentence_budget,
        },
    )

    _record_audit(session, org_id, {
        "rating_rounded": review.rating,
        "review_hash": hashlib.sha256(review.text.encode("utf-8")).hexdigest(),
        "prompt_fingerprint": draft.prompt_fingerprint,
        "prompt_version": gen_req.prompt_version,
        "banned_list_version": gen_req.banned_list_version,
        "model": model,
        "temperature": gen_req.temperature,
        "sample_count": draft.sample_count,
        "sample_ids": draft.sample_ids,
        "review_id": req.review_id,
        "external_review_id": req.external_review_id,
    })
    logger.info(f"Drafted reply for org {org_id} (rating {review.rating}, {draft.sample_count} samples)")

    response = DraftResponse(
        reply_text=draft.text,
        meta=DraftMeta(
            owner_language=settings.owner_language,
            reviewer_language=req.language,
            reply_tone=settings.reply_tone,
            reply_signature=settings.reply_signature,
        ),
    )
    return DraftOutcome(response=response, draft=draft)
