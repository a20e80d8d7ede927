"""
Property-based tests for audit helpers.

Properties:
- Daily series are dense: one entry per day, in order, counts preserved
- Paging clamps land inside their bounds; day windows outside 1..366 are refused
- Retention ages below the floor are always refused
- Properties bags always come back as JSON maps with string keys
"""
import json
from datetime import date, timedelta

import pytest
from hypothesis import given, strategies as st

from apps.audit.services.audit_recorder import (
    dense_daily_series, json_safe_properties, validate_retention,
)
from apps.audit.services.login_audit_tracker import MAX_DAYS, MAX_LIMIT, clamp_limit, validate_days
from apps.core.exceptions import InvalidRetention, ValidationFailed


@st.composite
def day_window(draw):
    """Generate a start date, an inclusive end date and sparse counts inside the window."""
    start = draw(st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)))
    length = draw(st.integers(min_value=1, max_value=120))
    end = start + timedelta(days=length - 1)
    offsets = draw(st.sets(st.integers(min_value=0, max_value=length - 1), max_size=20))
    counts = {start + timedelta(days=offset): draw(st.integers(min_value=1, max_value=1000)) for offset in offsets}
    return start, end, counts


@given(window=day_window())
def test_daily_series_is_dense(window):
    start, end, counts = window

    series = dense_daily_series(counts, start, end)

    assert len(series) == (end - start).days + 1
    assert series[0]['date'] == start.isoformat()
    assert series[-1]['date'] == end.isoformat()
    assert [entry['date'] for entry in series] == sorted(entry['date'] for entry in series)
    assert sum(entry['count'] for entry in series) == sum(counts.values())


@given(value=st.one_of(st.integers(), st.text(max_size=6), st.none()))
def test_limit_clamp_stays_in_bounds(value):
    assert 1 <= clamp_limit(value) <= MAX_LIMIT


@given(days=st.integers(min_value=1, max_value=MAX_DAYS))
def test_days_in_range_kept(days):
    assert validate_days(days) == days
    assert validate_days(str(days)) == days


@given(days=st.one_of(st.integers(max_value=0), st.integers(min_value=MAX_DAYS + 1)))
def test_days_out_of_range_refused(days):
    with pytest.raises(ValidationFailed):
        validate_days(days)


@given(days=st.integers(max_value=29))
def test_retention_below_floor_refused(days):
    with pytest.raises(InvalidRetention):
        validate_retention(days)


@given(days=st.integers(min_value=30, max_value=10000))
def test_retention_at_or_above_floor_accepted(days):
    assert validate_retention(days) == days


@given(properties=st.dictionaries(
    st.one_of(st.text(max_size=10), st.integers()),
    st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=20), st.dates(), st.decimals(allow_nan=False)),
    max_size=8,
))
def test_properties_become_json_maps(properties):
    safe = json_safe_properties(properties)

    assert all(isinstance(key, str) for key in safe)
    assert json.loads(json.dumps(safe)) == safe
