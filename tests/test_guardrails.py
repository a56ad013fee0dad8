import pytest

from replydraft.guardrails import (
    APOLOGY_RE,
    STAGES,
    EnforcementContext,
    EnforcementPipeline,
    append_signature,
    capitalize_first,
    dedupe_apologies,
    detach_signature,
    drop_invented_excuses,
    enforce_exclamations,
    enforce_sentence_budget,
    normalize_surface,
    repair_elisions,
    sanitize_corporate_phrasing,
    strip_closers,
    strip_templated_openers,
)
from replydraft.text import split_sentences


def ctx(**kw):
    kw.setdefault("rating", 4)
    return EnforcementContext(**kw)


def sentences(text):
    return list(split_sentences(text))


def test_stage_order():
    assert [name for name, _ in STAGES] == [
        "normalize_surface",
        "strip_templated_openers",
        "sanitize_corporate_phrasing",
        "repair_elisions",
        "capitalize_first",
        "drop_invented_excuses",
        "dedupe_apologies",
        "strip_closers",
        "enforce_sentence_budget",
        "enforce_exclamations",
        "append_signature",
    ]


def test_normalize_surface():
    assert normalize_surface("  We’re glad \U0001F600  you came “back”  ", ctx()) == "We're glad you came back"
    assert len(normalize_surface("x" * 2000, ctx())) == 900


@pytest.mark.parametrize("raw, expected", [
    ("Thank you for your review! The tacos were great.", "The tacos were great."),
    ("Thanks! We appreciate your feedback. Tacos rule.", "Tacos rule."),
    ("We're so sorry to hear that. The soup was cold.", "The soup was cold."),
    ("¡Gracias por tu reseña! La paella estaba fría.", "La paella estaba fría."),
    ("Merci pour votre avis. Le pain était sec.", "Le pain était sec."),
    ("The tacos were great.", "The tacos were great."),
])
def test_strip_templated_openers(raw, expected):
    out = strip_templated_openers(raw, ctx())
    assert out == expected
    assert strip_templated_openers(out, ctx()) == out


def test_sanitize_corporate_phrasing():
    assert sanitize_corporate_phrasing("We strive to keep the patio clean.", ctx()) == "We try to keep the patio clean."
    assert sanitize_corporate_phrasing("Honestly we aim to be quick.", ctx()) == "Honestly we want to be quick."
    assert sanitize_corporate_phrasing(
        "The fries were cold. We take this seriously. We'll talk to the kitchen.", ctx()
    ) == "The fries were cold. We'll talk to the kitchen."


def test_repair_elisions_english():
    assert repair_elisions("We werent ready and dont have excuses.", ctx()) == "We weren't ready and don't have excuses."
    assert repair_elisions("Dont worry.", ctx()) == "Don't worry."


def test_repair_elisions_skips_other_languages():
    text = "Le plat dont vous parlez."
    assert repair_elisions(text, ctx(language="fr")) == text


def test_capitalize_first():
    assert capitalize_first("great to hear", ctx()) == "Great to hear"
    assert capitalize_first("éclair was fresh", ctx()) == "Éclair was fresh"
    assert capitalize_first("123 ok", ctx()) == "123 ok"
    assert capitalize_first("", ctx()) == ""


def test_drop_invented_excuses():
    low = ctx(rating=1, review_text="The wait was long.")
    assert drop_invented_excuses(
        "Sorry about the wait. We were slammed that night. Please call us.", low
    ) == "Sorry about the wait. Please call us."


def test_excuses_kept_when_reviewer_mentions_them_or_rating_is_ok():
    text = "Sorry about the wait. We were busy that night."
    assert drop_invented_excuses(text, ctx(rating=1, review_text="It was busy and slow.")) == text
    assert drop_invented_excuses(text, ctx(rating=3, review_text="Slow.")) == text


def test_excuses_never_empty_the_reply():
    text = "We were busy. We were slammed."
    assert drop_invented_excuses(text, ctx(rating=1, review_text="Slow.")) == text


def test_dedupe_apologies_for_low_ratings():
    text = "Sorry the soup was cold. We apologize for the wait. Sorry again."
    out = dedupe_apologies(text, ctx(rating=2))
    assert out == "Sorry the soup was cold."
    assert dedupe_apologies(text, ctx(rating=4)) == text


def test_strip_closers_only_on_long_positive_replies():
    text = "The brisket was a hit. Marco loved it. Hope to see you again soon. The sauce is new."
    out = strip_closers(text, ctx(rating=5))
    assert out == "The brisket was a hit. Marco loved it. The sauce is new."
    short = "The brisket was a hit. Hope to see you again soon."
    assert strip_closers(short, ctx(rating=5)) == short
    assert strip_closers(text, ctx(rating=3)) == text


def test_enforce_sentence_budget():
    assert enforce_sentence_budget("A. B. C.", ctx(sentence_budget=2)) == "A. B."


def test_exclamations_removed_without_double_periods():
    out = enforce_exclamations("Great!! Thanks!", ctx())
    assert "!" not in out
    assert ".." not in out
    assert out == "Great. Thanks."
    assert enforce_exclamations("¡Hola! Gracias.", ctx()) == "Hola. Gracias."


def test_single_exclamation_allowed():
    out = enforce_exclamations("Great!! Thanks!", ctx(allow_exclamation=True))
    assert out == "Great! Thanks."
    assert out.count("!") == 1


def test_append_signature():
    out = append_signature("Glad you came.", ctx(reply_signature="The Team"))
    assert out.splitlines()[-1] == "— The Team"
    assert append_signature(out, ctx(reply_signature="The Team")) == out
    assert append_signature("", ctx(reply_signature="The Team")) == ""
    assert append_signature("Glad you came.", ctx()) == "Glad you came."


def test_detach_signature():
    assert detach_signature("Glad you came.\n— The Team", "The Team") == "Glad you came."
    assert detach_signature("Glad you came. — the team", "The Team") == "Glad you came."
    assert detach_signature("Glad you came.\n- The Team", "The Team") == "Glad you came."
    assert detach_signature("Glad you came.", None) == "Glad you came."


def test_hyphenated_word_is_not_a_signature():
    assert detach_signature("Glad you met the A-Team", "Team") == "Glad you met the A-Team"
    c = ctx(rating=5, reply_signature="Team")
    once = EnforcementPipeline().run("Glad you met the A-Team", c)
    assert once.text == "Glad you met the A-Team\n— Team"
    assert EnforcementPipeline().run(once.text, c).text == once.text


LOW_RAW = (
    "Thank you for your review! We’re so sorry the pasta was cold \U0001F61E. "
    "We were slammed that night!! We apologize again. Hope to see you again soon!"
)
HIGH_RAW = (
    "Thanks so much! The brisket on Saturday was a hit with Marco!! "
    "Come back soon! We look forward to seeing you."
)


def test_pipeline_low_rating_scenario():
    c = ctx(rating=1, review_text="Pasta was cold.", reply_signature="The Team")
    result = EnforcementPipeline().run(LOW_RAW, c)
    body, sig = result.text.split("\n")
    assert sig == "— The Team"
    assert body == "We're so sorry the pasta was cold. Hope to see you again soon."
    assert sum(1 for s in sentences(body) if APOLOGY_RE.search(s)) == 1
    assert "!" not in result.text
    assert "drop_invented_excuses" in result.changed_stages
    assert "dedupe_apologies" in result.changed_stages


def test_pipeline_strips_closers_for_happy_reviews():
    c = ctx(rating=5, sentence_budget=3, allow_exclamation=True)
    result = EnforcementPipeline().run(HIGH_RAW, c)
    assert result.text == "The brisket on Saturday was a hit with Marco!"
    assert result.closer_stripped


@pytest.mark.parametrize("raw, c", [
    (LOW_RAW, ctx(rating=1, review_text="Pasta was cold.", reply_signature="The Team")),
    (HIGH_RAW, ctx(rating=5, sentence_budget=3, allow_exclamation=True)),
    ("we strive to do better, dont worry. Great!! See you soon!", ctx(rating=3, sentence_budget=3)),
    ("Merci beaucoup! Le plat dont vous parlez revient samedi.", ctx(rating=4, language="fr")),
    ("We were slammed that night. Thanks for the feedback. Please call us.", ctx(rating=1, review_text="Food was cold.")),
    ("We were busy. I'm sorry. The soup was cold.", ctx(rating=1, review_text="Food was cold.")),
])
def test_pipeline_is_idempotent(raw, c):
    pipeline = EnforcementPipeline()
    once = pipeline.run(raw, c)
    twice = pipeline.run(once.text, c)
    assert twice.text == once.text


def test_pipeline_never_grows_sentence_count():
    c = ctx(rating=2, sentence_budget=2)
    result = EnforcementPipeline().run("One thing. Two things. Three things. Four things.", c)
    assert len(sentences(result.text)) <= 2


def test_pipeline_handles_non_string_input():
    assert EnforcementPipeline().run(None, ctx()).text == ""


def test_find_banned_hits():
    pipeline = EnforcementPipeline()
    hits = pipeline.find_banned_hits("We appreciate your feedback, valued customer.")
    assert "We appreciate your feedback" in hits
    assert "valued customer" in hits
    assert "we appreciate" in hits
    assert pipeline.find_banned_hits("Glad the tacos landed.", avoid={"tacos"}) == ["tacos"]
    assert pipeline.find_banned_hits("Glad the tacos landed.") == []


def test_find_banned_hits_is_capped():
    text = " ".join([
        "Thank you for your feedback", "We appreciate your feedback", "We strive",
        "valued customer", "valued guest", "fell short", "enhance our", "refine our",
    ])
    assert len(EnforcementPipeline().find_banned_hits(text)) == 6


@pytest.mark.parametrize("raw, expected", [
    ("We were slammed that night. Thanks for the feedback. Please call us.", "Please call us."),
    ("We were busy. I'm sorry. The soup was cold.", "The soup was cold."),
])
def test_opener_exposed_by_dropped_sentence_is_stripped(raw, expected):
    c = ctx(rating=1, review_text="Food was cold.")
    assert EnforcementPipeline().run(raw, c).text == expected
