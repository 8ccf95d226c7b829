from hypothesis import given
from hypothesis.strategies import integers, lists, sampled_from

from lalrgen.phrase import (
    EMPTY_SET,
    EPSILON,
    Matched,
    Phrase,
    PhraseSet,
    Remaining,
    Unmatched,
)

tokens = sampled_from(["a", "b", "c"])
phrases = lists(tokens, max_size=3).map(lambda ts: Phrase(tuple(ts)))
phrase_sets = lists(phrases, max_size=4).map(PhraseSet)


def test_phrase_basics():
    phrase = Phrase.of("a", "b", "c")
    assert len(phrase) == 3
    assert phrase.starts_with("a")
    assert not phrase.starts_with("b")
    assert phrase.shorten(2) == Phrase.of("a", "b")
    assert phrase.shorten(5) is phrase
    assert phrase.remove_first() == Phrase.of("b", "c")
    assert str(phrase) == "a b c"
    assert str(Phrase()) == "()"


def test_remove_first_of_single_token_is_none():
    assert Phrase.of("a").remove_first() is None
    assert Phrase().remove_first() is None


def test_count_tokens_skips_disallow_markers():
    assert Phrase.of("a", "(!LineTerminator)", "b").count_tokens() == 2


def test_phrase_set_iterates_sorted():
    phrase_set = PhraseSet.of(("b",), ("a", "c"), ("a",))
    assert [str(p) for p in phrase_set] == ["a", "a c", "b"]
    assert str(phrase_set) == "[a, a c, b]"


def test_concat_truncates():
    left = PhraseSet.of(("a",), ())
    right = PhraseSet.of(("b", "c"))
    assert left.concat(right, limit=2) == PhraseSet.of(("a", "b"), ("b", "c"))
    assert left.concat(right) == PhraseSet.of(("a", "b", "c"), ("b", "c"))


def test_concat_phrase():
    phrase_set = PhraseSet.of(("a",), ("b", "c"))
    assert phrase_set.concat_phrase(Phrase.of("$"), limit=2) == PhraseSet.of(("a", "$"), ("b", "c"))


def test_min_max_tokens():
    phrase_set = PhraseSet.of((), ("a", "b"))
    assert phrase_set.min_tokens() == 0
    assert phrase_set.max_tokens() == 2
    assert EMPTY_SET.min_tokens() is None
    assert EMPTY_SET.max_tokens() is None


def test_includes():
    phrase_set = PhraseSet.of(("a",), ("b", "c"))
    assert phrase_set.includes("a") == Matched()
    assert phrase_set.includes("x") == Unmatched()
    assert phrase_set.includes("b") == Remaining(PhraseSet.of(("c",)))


def test_excludes():
    phrase_set = PhraseSet.of(("a",), ("b", "c"))
    assert phrase_set.excludes("a") == Unmatched()
    assert phrase_set.excludes("x") == Matched()
    assert phrase_set.excludes("b") == Remaining(PhraseSet.of(("c",)))


@given(phrase_sets, phrase_sets)
def test_merge_commutes(a, b):
    assert a.merge(b) == b.merge(a)


@given(phrase_sets, phrase_sets, phrase_sets)
def test_merge_associates(a, b, c):
    assert a.merge(b).merge(c) == a.merge(b.merge(c))


@given(phrase_sets)
def test_merge_idempotent(a):
    assert a.merge(a) == a


@given(phrase_sets, phrase_sets)
def test_merge_is_an_upper_bound(a, b):
    merged = a.merge(b)
    assert a <= merged
    assert b <= merged


@given(phrase_sets)
def test_epsilon_is_the_concat_identity(a):
    assert a.concat(EPSILON) == a
    assert EPSILON.concat(a) == a


@given(phrase_sets)
def test_concat_with_empty_set_is_empty(a):
    assert len(a.concat(EMPTY_SET)) == 0
    assert len(EMPTY_SET.concat(a)) == 0


@given(phrase_sets, phrase_sets, integers(min_value=1, max_value=3))
def test_concat_respects_the_limit(a, b, limit):
    for phrase in a.concat(b, limit=limit):
        assert len(phrase) <= limit
