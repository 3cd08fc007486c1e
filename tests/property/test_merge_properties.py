"""
Property-based tests for the row ordering and merge using Hypothesis.

Tests invariants that should hold for all inputs:
- The comparator is antisymmetric and agrees with sorting
- '' and NULL are interchangeable in string columns
- Merging two sorted streams reproduces the source multiset
"""

from functools import cmp_to_key

from hypothesis import given, settings, strategies as st

from tablesync.compare import MergeStep, classify_rows, compare_rows, compare_values
from tablesync.model import ColumnClass

CLASSES = [ColumnClass.NUMERIC, ColumnClass.STRING]

numbers = st.one_of(st.none(), st.integers(min_value=-1000, max_value=1000))
texts = st.one_of(st.none(), st.text(alphabet="abAB", max_size=3))
rows = st.tuples(numbers, texts)


def sort_rows(values):
    return sorted(values, key=cmp_to_key(lambda a, b: compare_rows(a, b, CLASSES)))


def merge(source, dest):
    """Replay the merge and return the rows the destination ends with"""
    result = []
    i = j = 0
    while True:
        src = source[i] if i < len(source) else None
        dst = dest[j] if j < len(dest) else None
        step = classify_rows(src, dst, CLASSES)
        if step is None:
            return result
        if step is MergeStep.MATCH:
            result.append(dst)
            i += 1
            j += 1
        elif step in (MergeStep.SOURCE_ONLY, MergeStep.SOURCE_FIRST):
            result.append(src)
            i += 1
        else:
            j += 1


@given(a=numbers, b=numbers)
def test_numeric_comparison_is_antisymmetric(a, b):
    """Swapping operands flips the sign"""
    assert compare_values(a, b, ColumnClass.NUMERIC) == -compare_values(b, a, ColumnClass.NUMERIC)


@given(a=texts, b=texts)
def test_string_comparison_is_antisymmetric(a, b):
    """Swapping operands flips the sign"""
    assert compare_values(a, b, ColumnClass.STRING) == -compare_values(b, a, ColumnClass.STRING)


@given(value=texts)
def test_empty_and_null_interchangeable(value):
    """'' and NULL order identically against any string"""
    assert compare_values("", value, ColumnClass.STRING) == compare_values(None, value, ColumnClass.STRING)


@given(values=st.lists(rows, max_size=20))
def test_sorted_rows_are_in_merge_order(values):
    """Adjacent sorted rows never compare out of order"""
    ordered = sort_rows(values)
    for previous, current in zip(ordered, ordered[1:]):
        assert compare_rows(previous, current, CLASSES) <= 0


@settings(max_examples=200)
@given(source=st.lists(rows, max_size=15), dest=st.lists(rows, max_size=15))
def test_merge_converges_to_source(source, dest):
    """The destination ends with rows equivalent to the source, duplicates included"""
    source = sort_rows(source)
    result = sort_rows(merge(source, sort_rows(dest)))

    assert len(result) == len(source)
    for got, expected in zip(result, source):
        assert compare_rows(got, expected, CLASSES) == 0


@given(source=st.lists(rows, max_size=15))
def test_merge_with_itself_only_matches(source):
    """Merging identical streams takes only MATCH steps"""
    source = sort_rows(source)
    steps = [classify_rows(row, row, CLASSES) for row in source]

    assert all(step is MergeStep.MATCH for step in steps)
    assert merge(source, list(source)) == source
