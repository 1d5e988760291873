from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from coldcopy_local.utils.structure import (
    apply_length_decay,
    count_words,
    enforce_body_paragraph_count,
    enforce_email_paragraphs,
    follow_up_target_paragraphs,
    split_into_paragraphs,
    try_split_paragraph,
)


LONG_PARAGRAPH = (
    "Acme opened a new Denver facility this spring. "
    "The team is hiring twenty robotics engineers to support it. "
    "We help warehouses cut pick errors in half within a quarter."
)


def test_count_words():
    assert count_words("") == 0
    assert count_words("  one two\nthree ") == 3


def test_split_into_paragraphs_flows_lines():
    body = "Line one\nline two.\n\n\nSecond<br>para."
    assert split_into_paragraphs(body) == ["Line one line two.", "Second para."]


def test_try_split_paragraph_prefers_sentence_near_middle():
    head, tail = try_split_paragraph(LONG_PARAGRAPH)
    assert head.endswith("support it.")
    assert tail.startswith("We help warehouses")


def test_try_split_paragraph_uses_clause_boundary():
    text = "Here is the one thing we noticed about Acme: the Denver team doubled its headcount"
    head, tail = try_split_paragraph(text)
    assert head.endswith(":")
    assert tail.startswith("the Denver team")


def test_try_split_paragraph_without_boundary():
    assert try_split_paragraph("Too short to split") is None


def test_extra_paragraphs_are_merged_into_last():
    body = "One.\n\nTwo.\n\nThree.\n\nFour."
    assert enforce_body_paragraph_count(body, 2) == "One.\n\nTwo. Three. Four."


def test_missing_paragraphs_are_split():
    result = enforce_body_paragraph_count(LONG_PARAGRAPH, 3)
    assert len(result.split("\n\n")) == 3


def test_split_is_best_effort():
    assert enforce_body_paragraph_count("Short one.", 3) == "Short one."


def test_zero_target_leaves_body():
    assert enforce_body_paragraph_count("A\r\n\r\nB", 0) == "A\n\nB"


def test_enforce_email_paragraphs_keeps_greeting():
    email = "Hi Dana,\n\nOne.\n\nTwo.\n\nThree.\n\nFour."
    assert enforce_email_paragraphs(email, 3) == "Hi Dana,\n\nOne.\n\nTwo.\n\nThree. Four."
    assert enforce_email_paragraphs("", 3) == ""


@pytest.mark.parametrize(
    "index,desired,expected",
    [(1, 1, 2), (2, 2, 2), (1, 3, 2), (3, 3, 1), (4, 4, 1), (3, 4, 2), (0, 2, 2), (1, 0, 0)],
)
def test_follow_up_target_paragraphs(index, desired, expected):
    assert follow_up_target_paragraphs(index, desired) == expected


def test_five_paragraphs_merge_into_three():
    body = "One.\n\nTwo.\n\nThree.\n\nFour.\n\nFive."
    assert enforce_body_paragraph_count(body, 3) == "One.\n\nTwo.\n\nThree. Four. Five."


def test_length_decay_trims_trailing_body_paragraphs():
    initial = "one two three four five six"
    follow_up = "Hi Dana,\n\na b c\n\nd e f\n\ng h"
    assert apply_length_decay(initial, follow_up) == "Hi Dana,\n\na b c"


def test_length_decay_keeps_one_body_paragraph_after_greeting():
    initial = "Hi Dana,\n\nShort intro here.\n\nOne more line.\n\nCall next week?"
    follow_up = "Hi Dana,\n\n" + " ".join(["word"] * 30)

    assert apply_length_decay(initial, follow_up) == follow_up


def test_length_decay_keeps_shorter_follow_up():
    assert apply_length_decay("one two three four five", "a b") == "a b"
    assert apply_length_decay("one", "a b c d") == "a b c d"
