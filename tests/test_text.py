from replydraft.text import (
    collapse_whitespace,
    jaccard_similarity,
    limit_sentences,
    split_sentences,
    strip_emoji,
    strip_quote_marks,
    tidy_punctuation,
    tokenize,
    trim_and_clip,
    word_count,
)


def test_helpers_are_total_on_non_strings():
    assert trim_and_clip(None, 10) == ""
    assert collapse_whitespace(42) == ""
    assert strip_emoji(None) == ""
    assert strip_quote_marks(["x"]) == ""
    assert list(split_sentences(None)) == []
    assert limit_sentences(None, 2) == ""
    assert word_count(None) == 0
    assert tokenize(None) == []
    assert tidy_punctuation(None) == ""


def test_trim_and_clip():
    assert trim_and_clip("  hello world  ", 5) == "hello"
    assert trim_and_clip("abc", -1) == ""


def test_collapse_whitespace():
    assert collapse_whitespace("  a \n\t b   c ") == "a b c"


def test_strip_emoji_and_quotes():
    assert collapse_whitespace(strip_emoji("Great \U0001F600 food \U0001F355")) == "Great food"
    assert strip_quote_marks('He said “wow” and "yes"') == "He said wow and yes"


def test_split_sentences_is_lazy_and_restartable():
    gen = split_sentences("One. Two! Three?")
    assert next(gen) == "One."
    assert list(gen) == ["Two!", "Three?"]
    assert list(split_sentences("One. Two! Three?")) == ["One.", "Two!", "Three?"]
    assert list(split_sentences("   ")) == []


def test_limit_sentences_leaves_short_text_untouched():
    text = "First one.   Second one."
    assert limit_sentences(text, 2) == text


def test_limit_sentences_truncates_and_is_idempotent():
    once = limit_sentences("A. B. C. D.", 2)
    assert once == "A. B."
    assert limit_sentences(once, 2) == once


def test_tokenize_keeps_accented_letters():
    assert tokenize("Café au lait, 2 shots!") == ["café", "au", "lait", "2", "shots"]


def test_tokenize_caps_token_count():
    assert len(tokenize("word " * 400)) == 250


def test_jaccard_similarity():
    assert jaccard_similarity(set(), set()) == 1.0
    assert jaccard_similarity({"a"}, set()) == 0.0
    assert jaccard_similarity({"a", "b"}, {"b", "c"}) == 1 / 3


def test_tidy_punctuation():
    assert tidy_punctuation("Hi. . Bye .") == "Hi. Bye."
    assert tidy_punctuation(", and the rest, .") == "and the rest."
