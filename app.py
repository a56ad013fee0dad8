from dotenv import load_dotenv
load_dotenv(override=True)

import os
import streamlit as st
import pandas as pd
from sqlalchemy import select
from replydraft.db import (
    init_db, get_session, DraftAudit, OrgSettings, OrgVoiceProfile,
    add_voice_sample, delete_voice_sample, list_voice_samples, load_voice_samples,
    record_reply_event, sample_warnings, save_org_settings, save_voice_profile,
)
from replydraft.agent import draft_reply
from replydraft.curator import VoiceCurator
from replydraft.errors import DraftError, InputValidationError
from replydraft.models import TONES

st.set_page_config(page_title="Review Reply Studio", page_icon="📝", layout="wide")
st.title("📝 Review Reply Studio")
st.caption("Draft short replies in your own voice. Copy and post them yourself.")

init_db()
session = get_session()

with st.sidebar:
    org_id = st.text_input("Organization", value=os.getenv("REPLYDRAFT_ORG", "demo-org"))

    st.header("Reply Settings")
    current = session.get(OrgSettings, org_id)
    owner_language = st.text_input("Owner language", value=current.owner_language if current else "en")
    tone_labels = ["warm", "neutral", "direct", "playful", "professional"]
    tone_index = tone_labels.index(current.reply_tone) if current and current.reply_tone in tone_labels else 0
    reply_tone = st.selectbox("Reply tone", tone_labels, index=tone_index)
    signature = st.text_input("Signature", value=(current.reply_signature or "") if current else "")

    profile = session.get(OrgVoiceProfile, org_id)
    reply_as = st.selectbox("Reply as", ["we", "owner", "manager"],
                            index=["we", "owner", "manager"].index(profile.reply_as)
                            if profile and profile.reply_as in ("we", "owner", "manager") else 0)
    allow_excl = st.checkbox("Allow one exclamation mark", value=bool(profile and profile.allow_exclamation))
    avoid = st.text_input("Also avoid (comma-separated)", value="")
    if st.button("Save settings"):
        save_org_settings(session, org_id, owner_language, reply_tone, signature)
        save_voice_profile(session, org_id, reply_as=reply_as, allow_exclamation=allow_excl,
                           things_to_avoid=[a.strip() for a in avoid.split(",") if a.strip()])
        st.success("Saved.")

    st.divider()
    st.header("Voice Samples")
    new_sample = st.text_area("Paste a reply you wrote yourself", height=100)
    if st.button("Add sample") and new_sample.strip():
        try:
            add_voice_sample(session, org_id, new_sample)
        except InputValidationError as e:
            st.error(e.message)
        else:
            st.success("Sample added.")
    uploaded = st.file_uploader("Upload samples CSV (column: text)", type=["csv"])
    if uploaded and st.button("Import samples"):
        df = pd.read_csv(uploaded)
        if "text" not in df.columns:
            st.error("Missing column: text")
        else:
            added, skipped = 0, 0
            for t in df["text"].dropna().astype(str):
                try:
                    add_voice_sample(session, org_id, t)
                    added += 1
                except InputValidationError:
                    skipped += 1
            st.success(f"Added {added} samples, skipped {skipped} outside 60-600 characters.")

    st.divider()
    st.write(f"**Model:** {os.getenv('LLM_MODEL', 'gpt-4o-mini')}")
    st.write(f"**Dry-run:** {os.getenv('LLM_DRY_RUN', 'true')}")

# Voice sample library
st.subheader("Voice Library")
samples = list_voice_samples(session, org_id)
if not samples:
    st.info("No voice samples yet. Add a few replies you wrote yourself in the sidebar.")
else:
    curator = VoiceCurator()
    scored = {c.id: c.score for c in curator.candidates(load_voice_samples(session, org_id))}
    curated = set(curator.curate(load_voice_samples(session, org_id)).sample_ids)
    lib = pd.DataFrame([{
        "id": s.id, "created_at": s.created_at, "score": round(scored.get(s.id, 0.0), 3),
        "in_prompt": "✅" if s.id in curated else "",
        "warnings": ", ".join(sample_warnings(s.sample_text)),
        "text": s.sample_text[:120] + ("..." if len(s.sample_text) > 120 else ""),
    } for s in samples])
    st.dataframe(lib, use_container_width=True)
    to_delete = st.selectbox("Delete sample", [""] + lib["id"].tolist())
    if st.button("Delete selected") and to_delete:
        delete_voice_sample(session, org_id, to_delete)
        st.success("Deleted.")

# Draft
st.divider()
st.subheader("Draft a Reply")
col1, col2 = st.columns([2, 1])
with col1:
    review_text = st.text_area("Review text", height=140)
    business_name = st.text_input("Business name")
with col2:
    rating = st.slider("Rating", 1, 5, 5)
    language = st.text_input("Reviewer language", value="en")
    tone = st.selectbox("Tone override", [""] + list(TONES))
    rules = st.text_area("Extra rules (one per line)", height=80)

if st.button("Draft reply"):
    body = {
        "review_text": review_text, "business_name": business_name, "rating": rating,
        "language": language, "tone": tone or None,
        "rules": [r for r in rules.splitlines() if r.strip()],
    }
    try:
        outcome = draft_reply(body, org_id, session)
    except DraftError as e:
        st.error(f"{e.message} (status {e.status_code})")
    else:
        st.session_state.last_draft = {"body": body, "outcome": outcome}
        record_reply_event(session, org_id, "drafted", rating=rating, reply_text=outcome.draft.text,
                           reviewer_language=language, owner_language=outcome.response.meta.owner_language)

last = st.session_state.get("last_draft")
if last:
    outcome = last["outcome"]
    st.text_area("Reply (copy and post it yourself)", value=outcome.response.reply_text, height=120)
    st.json(outcome.response.meta.model_dump())
    with st.expander("Diagnostics"):
        st.json(outcome.draft.diagnostics)
        st.write(f"Samples used: {outcome.draft.sample_count} | fingerprint: `{outcome.draft.prompt_fingerprint[:12]}`")
    c1, c2 = st.columns(2)
    for col, event in ((c1, "copied"), (c2, "posted")):
        if col.button(f"Mark as {event}"):
            record_reply_event(session, org_id, event, rating=last["body"]["rating"],
                               reply_text=outcome.draft.text,
                               reviewer_language=last["body"]["language"],
                               owner_language=outcome.response.meta.owner_language)
            st.success(f"Marked as {event}.")

# Audit
st.divider()
st.subheader("Draft Audit Log")
audits = session.execute(
    select(DraftAudit).where(DraftAudit.organization_id == org_id).order_by(DraftAudit.created_at.desc()).limit(50)
).scalars().all()
if not audits:
    st.info("No drafts yet.")
else:
    st.dataframe(pd.DataFrame([{
        "time": a.created_at, "rating": a.rating, "model": a.model, "temperature": a.temperature,
        "samples": a.sample_count, "prompt": a.prompt_version, "banned_list": a.banned_list_version,
        "fingerprint": a.prompt_fingerprint[:12],
    } for a in audits]), use_container_width=True)
