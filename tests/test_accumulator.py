"""Tool-call accumulation: ordering, overwrite and finalize-once rules."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from switchboard.accumulator import (
    ToolInvocationBuffer,
    ToolMarkupDetector,
    fold,
    serialize_argument,
)
from switchboard.errors import InvalidState
from switchboard.types import TextFragment, ToolCallPart, ToolInvocation

pytestmark = pytest.mark.unit


def test_tool_call_across_fragments() -> None:
    """Name, then one argument per fragment, in arrival order."""
    buffer = ToolInvocationBuffer()
    for fragment in (
        ToolCallPart(name="search"),
        ToolCallPart(arguments=(("query", "cats"),)),
        ToolCallPart(arguments=(("limit", "5"),)),
    ):
        fold(buffer, fragment)

    assert buffer.finalize() == ToolInvocation(
        tool_name="search",
        tool_id="search",
        parameters=(("query", "cats"), ("limit", "5")),
    )


def test_duplicate_argument_overwrites_in_place() -> None:
    buffer = ToolInvocationBuffer()
    buffer.fold(ToolCallPart(name="search", arguments=(("query", "dogs"),)))
    buffer.fold(ToolCallPart(arguments=(("limit", "5"),)))
    buffer.fold(ToolCallPart(arguments=(("query", "cats"),)))

    assert buffer.parameters == (("query", "cats"), ("limit", "5"))


def test_first_name_wins() -> None:
    buffer = ToolInvocationBuffer()
    buffer.fold(ToolCallPart(name="search"))
    buffer.fold(ToolCallPart(name="other"))
    assert buffer.tool_name == "search"
    assert buffer.tool_id == "search"


def test_empty_part_is_a_no_op() -> None:
    buffer = ToolInvocationBuffer()
    buffer.fold(ToolCallPart())
    assert buffer.is_empty


def test_finalize_is_allowed_once() -> None:
    buffer = ToolInvocationBuffer().fold(ToolCallPart(name="search"))
    first = buffer.finalize()

    assert buffer.finalized
    with pytest.raises(InvalidState):
        buffer.finalize()
    with pytest.raises(InvalidState):
        buffer.fold(ToolCallPart(arguments=(("late", "x"),)))
    assert buffer.parameters == ()
    assert first == ToolInvocation("search", "search", ())


def test_finalize_requires_a_name() -> None:
    buffer = ToolInvocationBuffer().fold(ToolCallPart(arguments=(("q", "x"),)))
    with pytest.raises(InvalidState, match="without a tool name"):
        buffer.finalize()


def test_text_cannot_be_folded() -> None:
    with pytest.raises(InvalidState):
        ToolInvocationBuffer().fold(TextFragment("hi"))


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("cats", "cats"),
        (5, "5"),
        (2.5, "2.5"),
        (True, "true"),
        (None, "null"),
        (["a", 1], '["a",1]'),
        ({"k": "é"}, '{"k":"é"}'),
    ],
)
def test_serialize_argument(value: object, expected: str) -> None:
    assert serialize_argument(value) == expected


@given(
    pairs=st.lists(
        st.tuples(
            st.sampled_from(["query", "limit", "lang", "page"]),
            st.text(max_size=8),
        ),
        max_size=12,
    )
)
@settings(max_examples=50, deadline=None, derandomize=True)
def test_parameters_follow_first_seen_order_with_last_value(
    pairs: list[tuple[str, str]],
) -> None:
    """Property: one entry per name, in first-seen order, with the last value."""
    buffer = ToolInvocationBuffer().fold(ToolCallPart(name="search"))
    for name, value in pairs:
        buffer.fold(ToolCallPart(arguments=((name, value),)))

    first_seen = list(dict.fromkeys(name for name, _ in pairs))
    last_value = dict(pairs)
    assert buffer.parameters == tuple((n, last_value[n]) for n in first_seen)


# =============================================================================
# Markup detection
# =============================================================================


def test_detector_passes_plain_text_through() -> None:
    detector = ToolMarkupDetector()

    assert detector.feed("Hello") == "Hello"
    assert detector.feed(" world") == " world"
    assert detector.flush() == ""
    assert not detector.tool_mode


def test_detector_holds_ambiguous_prefix_then_releases() -> None:
    detector = ToolMarkupDetector()

    assert detector.feed("  <fun") == ""
    assert detector.feed("ny>") == "  <funny>"
    assert not detector.tool_mode


def test_detector_releases_held_text_at_end() -> None:
    detector = ToolMarkupDetector()
    assert detector.feed("<func") == ""
    assert detector.flush() == "<func"


def test_detector_switches_to_tool_mode_across_reads() -> None:
    detector = ToolMarkupDetector()
    chunks = [
        "\n<function",
        "_calls>\n<invoke>\n<tool_name>search</tool_name>\n",
        "<parameters>\n<query>cats</query>\n<limit>5</limit>\n",
        "</parameters>\n</invoke>\n</function_calls>",
    ]

    emitted = "".join(detector.feed(c) for c in chunks) + detector.flush()

    assert emitted == ""
    assert detector.tool_mode
    assert detector.fragments() == [
        ToolCallPart(name="search"),
        ToolCallPart(arguments=(("query", "cats"), ("limit", "5"))),
    ]


def test_detector_without_markup_has_no_fragments() -> None:
    detector = ToolMarkupDetector()
    detector.feed("plain")
    assert detector.fragments() == []
