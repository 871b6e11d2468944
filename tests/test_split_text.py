import math

import pytest

from speech_pipeline.errors import InvalidArgumentError
from speech_pipeline.split_text import (
    expand_abbreviations,
    preprocess_text,
    split_on_boundaries,
    split_text,
)

SAMPLE = (
    "The first sentence is short. The second one goes on for a while, with commas, "
    "clauses and  double  spaces; it should still come back intact!\n\n"
    "A new paragraph starts here. Supercalifragilisticexpialidocious words are long."
)


@pytest.mark.parametrize("max_len", [1, 7, 30, 64, 1000])
def test_split_text_round_trips_and_respects_bound(max_len):
    segments = split_text(SAMPLE, max_len)

    assert "".join(segment.content for segment in segments) == SAMPLE
    assert all(0 < len(segment) <= max_len for segment in segments)
    assert len(segments) == math.ceil(len(SAMPLE) / max_len)
    assert [segment.index for segment in segments] == list(range(len(segments)))


def test_split_text_keeps_whitespace_exactly():
    segments = split_text("  a  b  ", 3)

    assert [segment.content for segment in segments] == ["  a", "  b", "  "]


@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
def test_split_text_empty_input_yields_nothing(text):
    assert split_text(text, 10) == []
    assert split_on_boundaries(text, 10) == []


@pytest.mark.parametrize("max_len", [0, -5, 2.5, True, "10"])
def test_split_text_rejects_invalid_chunk_length(max_len):
    with pytest.raises(InvalidArgumentError):
        split_text("some text", max_len)
    with pytest.raises(InvalidArgumentError):
        split_on_boundaries("some text", max_len)


def test_invalid_chunk_length_is_a_value_error():
    with pytest.raises(ValueError):
        split_text("", 0)


@pytest.mark.parametrize("max_len", [5, 20, 45, 80, 500])
def test_split_on_boundaries_round_trips_and_respects_bound(max_len):
    segments = split_on_boundaries(SAMPLE, max_len)

    assert "".join(segment.content for segment in segments) == SAMPLE
    assert all(0 < len(segment) <= max_len for segment in segments)


def test_split_on_boundaries_prefers_sentence_ends():
    text = "One two three. Four five six. Seven eight nine."

    segments = split_on_boundaries(text, 32)

    assert [segment.content for segment in segments] == [
        "One two three. Four five six. ",
        "Seven eight nine.",
    ]


def test_split_on_boundaries_does_not_break_words():
    text = "alpha beta gamma delta epsilon zeta eta theta"

    segments = split_on_boundaries(text, 12)

    for segment in segments:
        assert not segment.content.startswith(" ")
        for word in segment.content.split():
            assert word in text.split()


def test_split_on_boundaries_hard_cuts_unbroken_runs():
    text = "x" * 25

    segments = split_on_boundaries(text, 10)

    assert [len(segment) for segment in segments] == [10, 10, 5]


def test_expand_abbreviations():
    text = "Dr. Smith met Mr. Jones, e.g. at lunch."

    assert expand_abbreviations(text) == "Doctor Smith met Mister Jones, for example at lunch."


def test_preprocess_text_is_a_no_op_by_default():
    assert preprocess_text(SAMPLE) == SAMPLE


def test_preprocess_text_collapses_whitespace():
    processed = preprocess_text("a   b\n\n\n\nc", collapse_whitespace=True)

    assert processed == "a b\n\nc"
