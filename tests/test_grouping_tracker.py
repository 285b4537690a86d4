import pytest

from takeoffcalc.classifier import Rule, RuleTable, category_allows, claim, contains, normalize_text, peek
from takeoffcalc.errors import InvariantViolation
from takeoffcalc.grouping import by_subsection, group_items
from takeoffcalc.models import CY, SQ_FT, ClassifiedItem, ParsedDimensions
from takeoffcalc.tracker import UsedRowTracker


def _classified(row, key, subsection="Grade beams"):
    return ClassifiedItem(
        discipline="foundation",
        subsection=subsection,
        item_type="grade_beam",
        group_key=key,
        parsed=ParsedDimensions(),
        raw=row,
    )


def test_tracker_is_write_once(make_row):
    tracker = UsedRowTracker()
    tracker.mark_used(3, "foundation")
    tracker.mark_used(3, "foundation")
    assert tracker.is_used(3)
    assert tracker.owner(3) == "foundation"
    with pytest.raises(InvariantViolation):
        tracker.mark_used(3, "soe")
    assert tracker.claims() == {3: "foundation"}
    assert tracker.stats() == {"foundation": 1}

    tracker.reset()
    assert len(tracker) == 0
    tracker.mark_used(3, "soe")
    assert tracker.owner(3) == "soe"


def test_unused_rows_skip_blank_descriptions(make_row):
    rows = [make_row("SOG 6\""), make_row("   "), make_row("mystery item")]
    tracker = UsedRowTracker()
    tracker.mark_used(rows[0].source_index, "foundation")
    assert tracker.unused_rows(rows) == [rows[2]]


def test_groups_keep_first_seen_order_and_merge_singletons(make_row):
    items = [
        _classified(make_row("GB-1 (2'x3')"), "W2"),
        _classified(make_row("GB-2 (1'x3')"), "W1"),
        _classified(make_row("GB-3 (2'x3')"), "W2"),
        _classified(make_row("GB-4 (4'x3')"), "W4"),
    ]
    groups = group_items(items, columns_of=lambda item: [SQ_FT, CY])

    assert [g.group_key for g in groups] == ["W2", "MERGED"]
    assert [len(g) for g in groups] == [2, 2]
    assert groups[1].merged is True
    assert [m.description for m in groups[1].members] == ["GB-2 (1'x3')", "GB-4 (4'x3')"]
    assert groups[0].sum_spec.columns == (SQ_FT, CY)


def test_grouping_is_independent_of_input_order(make_row):
    a = _classified(make_row("GB-1"), "W2")
    b = _classified(make_row("GB-2"), "W2")
    c = _classified(make_row("GB-3"), "W3")
    forward = group_items([a, b, c])
    backward = group_items([c, b, a])
    assert {g.group_key: {m.raw.source_index for m in g.members} for g in forward} == {
        g.group_key: {m.raw.source_index for m in g.members} for g in backward
    }


def test_merge_can_be_disabled(make_row):
    items = [_classified(make_row("A"), "A"), _classified(make_row("B"), "B")]
    groups = group_items(items, merge_singletons=False)
    assert [g.group_key for g in groups] == ["A", "B"]
    assert not any(g.merged for g in groups)


def test_by_subsection_follows_declared_order(make_row):
    items = [
        _classified(make_row("x"), "k", subsection="Tie beam"),
        _classified(make_row("y"), "k", subsection="Grade beams"),
        _classified(make_row("z"), "k", subsection="Unlisted"),
    ]
    buckets = by_subsection(items, ["Grade beams", "Tie beam"])
    assert list(buckets) == ["Grade beams", "Tie beam", "Unlisted"]


_TABLE = RuleTable(
    [
        Rule("upper_raker", "Upper Raker", contains("upper raker")),
        Rule("raker", "Raker", contains("raker")),
    ]
)


def test_rule_table_is_first_match_wins():
    assert _TABLE.match("Upper Raker W12x26").item_type == "upper_raker"
    assert _TABLE.match("raker W12x26").item_type == "raker"
    assert _TABLE.match("") is None
    assert normalize_text("  Upper   RAKER ") == "upper raker"


def test_claim_marks_rows_and_peek_never_does(make_row):
    rows = [make_row("Raker W12x26"), make_row("Kicker"), make_row("Raker", category="Foundation")]
    tracker = UsedRowTracker()

    peeked = peek(_TABLE, rows, "soe", labels=("SOE",))
    assert len(tracker) == 0
    assert [i.claimed for i in peeked] == [False]

    claimed = claim(_TABLE, rows, tracker, "soe", labels=("SOE",))
    assert [i.raw.source_index for i in claimed] == [rows[0].source_index]
    assert tracker.owner(rows[0].source_index) == "soe"
    assert not tracker.is_used(rows[2].source_index)

    again = claim(_TABLE, rows, tracker, "soe", labels=("SOE",))
    assert again == []


def test_category_allows():
    assert category_allows(None, ("SOE",))
    assert category_allows("  ", ("SOE",))
    assert category_allows("soe", ("SOE",))
    assert not category_allows("Foundation", ("SOE",))
