import pytest

from codex_bridge.change_mode.formatter import format_edit
from codex_bridge.change_mode.parser import (
    TRANSITIONS,
    LineKind,
    ParseState,
    classify_line,
    parse_edits,
)
from codex_bridge.errors import ParseError
from codex_bridge.models import Edit
from tests.common.edit_blocks import block


def test_parse_single_block_with_surrounding_narrative():
    text = "\n".join(
        [
            "Here is the change you asked for.",
            "",
            block("x = 1\ny = 2", "x = 10\ny = 20", old_range="3-4", new_range="3-4"),
            "",
            "Let me know if anything else is needed.",
        ]
    )

    edits = parse_edits(text)

    assert len(edits) == 1
    edit = edits[0]
    assert edit.file == "src/app.py"
    assert (edit.old_start_line, edit.old_end_line) == (3, 4)
    assert (edit.new_start_line, edit.new_end_line) == (3, 4)
    assert edit.old_code == "x = 1\ny = 2"
    assert edit.new_code == "x = 10\ny = 20"


def test_parse_keeps_block_order_and_per_block_subject():
    text = "\n\n".join(
        [
            block("a", "b", file="one.py"),
            block("c", "d", file=None, old_range="5-5", new_range="5-5"),
            block("e", "f", file="three.py"),
        ]
    )

    edits = parse_edits(text)

    assert [edit.file for edit in edits] == ["one.py", None, "three.py"]
    assert [edit.old_code for edit in edits] == ["a", "c", "e"]


def test_markers_are_case_insensitive_and_tolerate_emphasis():
    text = "\n".join(
        [
            "  file:  `lib/util.py`  ",
            "**old line 7-8:**",
            "```",
            "def f():",
            "    return 1",
            "```",
            "  New Lines 7 to 8  ",
            "```js",
            "def f():",
            "    return 2",
            "```",
        ]
    )

    (edit,) = parse_edits(text)

    assert edit.file == "lib/util.py"
    assert (edit.old_start_line, edit.old_end_line) == (7, 8)
    assert (edit.new_start_line, edit.new_end_line) == (7, 8)
    assert edit.new_code == "def f():\n    return 2"


def test_missing_or_placeholder_line_numbers_become_zero():
    text = "\n".join(["OLD:", "```", "a", "```", "NEW lines 4-?:", "```", "b", "```"])

    (edit,) = parse_edits(text)

    assert (edit.old_start_line, edit.old_end_line) == (0, 0)
    assert (edit.new_start_line, edit.new_end_line) == (4, 0)


def test_crlf_line_endings_are_normalized():
    text = block("a\nb", "c", old_range="1-2").replace("\n", "\r\n")

    (edit,) = parse_edits(text)

    assert edit.old_code == "a\nb"


def test_no_blocks_returns_empty_list():
    assert parse_edits("Just some prose.\n```\nprint('hi')\n```\nOld code is fine.") == []
    assert parse_edits("") == []


def test_old_without_matching_new_raises_with_line_number():
    text = "\n".join(["OLD lines 1-1:", "```", "a", "```", "", "some text"])

    with pytest.raises(ParseError) as excinfo:
        parse_edits(text)

    assert "no matching NEW" in excinfo.value.message
    assert excinfo.value.line_number == 6


def test_next_block_before_new_section_is_a_parse_error():
    text = "\n".join(["OLD lines 1-1:", "```", "a", "```", "OLD lines 2-2:", "```", "b", "```"])

    with pytest.raises(ParseError, match="no matching NEW"):
        parse_edits(text)


def test_stray_new_heading_is_treated_as_narrative():
    assert parse_edits("NEW lines 1-1:\n```\na\n```") == []


def test_old_heading_followed_by_prose_is_treated_as_narrative():
    assert parse_edits("OLD lines 1-2:\nx = 1\n") == []
    assert parse_edits("Old:") == []


def test_prose_headings_before_a_real_block_do_not_hide_it():
    text = "\n".join(
        [
            "Here is the plan.",
            "New:",
            "a helper that trims input.",
            "",
            "Old:",
            "the helper kept trailing spaces.",
            "",
            block("a", "b"),
        ]
    )

    (edit,) = parse_edits(text)

    assert edit.file == "src/app.py"
    assert (edit.old_code, edit.new_code) == ("a", "b")


def test_ignored_old_heading_keeps_the_pending_file_subject():
    text = "\n".join(
        [
            "**FILE: lib/keep.py**",
            "Old:",
            "",
            "OLD lines 2-2:",
            "```",
            "a",
            "```",
            "NEW lines 2-2:",
            "```",
            "b",
            "```",
        ]
    )

    (edit,) = parse_edits(text)

    assert edit.file == "lib/keep.py"
    assert (edit.old_start_line, edit.old_end_line) == (2, 2)


def test_markdown_body_with_tagged_inner_fence_survives():
    new_body = "Usage:\n\n```python\nx = 1\n```\n\nDone."
    text = block("Usage: none", new_body, file="README.md", new_range="1-7")

    (edit,) = parse_edits(text)

    assert edit.old_code == "Usage: none"
    assert edit.new_code == new_body


def test_bare_fence_inside_body_still_closes_it():
    text = "\n".join(["OLD lines 1-1:", "```", "a", "```", "b", "```", "NEW lines 1-1:", "```", "c", "```"])

    with pytest.raises(ParseError, match="no matching NEW"):
        parse_edits(text)


def test_unterminated_fence_is_a_parse_error():
    text = "\n".join(["OLD lines 1-1:", "```", "a", "```", "NEW lines 1-1:", "```", "b"])

    with pytest.raises(ParseError, match="unterminated"):
        parse_edits(text)


def test_classify_line_is_state_dependent():
    assert classify_line("OLD lines 1-2:", ParseState.SEEKING_BLOCK)[0] is LineKind.OLD
    assert classify_line("OLD lines 1-2:", ParseState.IN_OLD_BODY)[0] is LineKind.BODY
    assert classify_line("```", ParseState.IN_NEW_BODY)[0] is LineKind.FENCE_CLOSE
    assert classify_line("```python", ParseState.IN_NEW_BODY)[0] is LineKind.BODY
    assert classify_line("```python", ParseState.IN_OLD_RANGE)[0] is LineKind.FENCE_OPEN
    assert classify_line("```", ParseState.IN_OLD_BODY, fence_depth=1)[0] is LineKind.BODY


def test_every_reachable_state_and_kind_has_a_transition():
    body_states = {ParseState.IN_OLD_BODY, ParseState.IN_NEW_BODY}
    outer_kinds = set(LineKind) - {LineKind.BODY, LineKind.FENCE_CLOSE}
    for state in ParseState:
        kinds = {LineKind.BODY, LineKind.FENCE_CLOSE} if state in body_states else outer_kinds
        for kind in kinds:
            assert (state, kind) in TRANSITIONS, (state, kind)


def test_formatted_markdown_edit_parses_back_unchanged():
    edit = Edit(
        file="docs/usage.md",
        old_start_line=3,
        old_end_line=3,
        old_code="Run it.",
        new_start_line=3,
        new_end_line=7,
        new_code="Run it:\n\n```bash\ncodex-bridge ping\n```",
    )

    assert parse_edits(format_edit(edit)) == [edit]
