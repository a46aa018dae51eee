"""Tests for timezone aggregation and origin estimation."""
from datetime import datetime, timedelta, timezone
import pytest
from contributor_origin.domain.models import CommitTimestampSample
from contributor_origin.domain.origin_analysis import (
    OriginRules,
    UNKNOWN_OFFSET,
    aggregate_samples,
    analyze_samples,
    dominant_offset,
    estimate_origin,
)


def sample(hour: int, label: str, offset_hours: int = 0) -> CommitTimestampSample:
    tz = timezone(timedelta(hours=offset_hours))
    return CommitTimestampSample(instant=datetime(2024, 5, 6, hour, 15, tzinfo=tz), offset_label=label)


def test_histograms_sum_to_sample_count():
    """Test that both histograms account for every sample exactly once."""
    samples = [sample(10, "+08:00", 8), sample(11, "+08:00", 8), sample(23, "-05:00", -5)]

    timezone_histogram, hour_histogram = aggregate_samples(samples)

    assert timezone_histogram == {"+08:00": 2, "-05:00": 1}
    assert hour_histogram == {10: 1, 11: 1, 23: 1}
    assert sum(timezone_histogram.values()) == len(samples)
    assert sum(hour_histogram.values()) == len(samples)


def test_aggregate_empty_returns_none():
    """Test that no samples means no histograms."""
    assert aggregate_samples([]) is None
    assert analyze_samples("nobody", []) is None


def test_hour_is_not_converted_to_utc():
    """Test that 10:00 at +08:00 lands in bucket 10, not 2."""
    _, hour_histogram = aggregate_samples([sample(10, "+08:00", 8)])

    assert hour_histogram == {10: 1}


def test_majority_target_offset_matches():
    """Test 8 of 10 samples at a target offset."""
    samples = [sample(22, "+08:00", 8)] * 8 + [sample(22, "-07:00", -7)] * 2

    estimate = analyze_samples("dev", samples)

    assert estimate.probability == pytest.approx(0.8)
    assert estimate.likely_origin_match is True
    assert estimate.dominant_offset == "+08:00"
    assert estimate.total_samples == 10


def test_working_hours_alone_can_match():
    """Test a match decided by working hours while probability stays 0."""
    samples = [sample(10, "+02:00", 2)] * 7 + [sample(22, "+02:00", 2)] * 3

    estimate = analyze_samples("dev", samples)

    assert estimate.probability == 0.0
    assert estimate.likely_origin_match is True


def test_no_signal_fires():
    """Test a contributor outside the target offsets and hours."""
    samples = [sample(2, "-08:00", -8)] * 6 + [sample(20, "-08:00", -8)] * 4

    estimate = analyze_samples("dev", samples)

    assert estimate.probability == 0.0
    assert estimate.likely_origin_match is False
    assert estimate.dominant_offset == "-08:00"


def test_dominant_target_offset_matches_below_threshold():
    """Test that a target dominant offset fires even under the ratio threshold."""
    estimate = estimate_origin(
        "dev",
        {"+08:00": 4, "-05:00": 3, "+01:00": 3},
        {23: 10},
        10
    )

    assert estimate.probability == pytest.approx(0.4)
    assert estimate.dominant_offset == "+08:00"
    assert estimate.likely_origin_match is True


def test_dominant_offset_tie_goes_to_first():
    """Test the tie-break between equally frequent labels."""
    assert dominant_offset({"-05:00": 2, "+08:00": 2}) == "-05:00"
    assert dominant_offset({"+08:00": 2, "-05:00": 2}) == "+08:00"
    assert dominant_offset({}) == UNKNOWN_OFFSET


def test_probability_threshold_is_strict():
    """Test that exactly 70% does not fire the ratio signal."""
    # -05:00 ties with two target labels and comes first, so it is dominant
    timezone_histogram = {"-05:00": 3, "+08:00": 3, "CST": 3, "Asia/Shanghai": 1}

    estimate = estimate_origin("dev", timezone_histogram, {23: 10}, 10)

    assert estimate.probability == pytest.approx(0.7)
    assert estimate.dominant_offset == "-05:00"
    assert estimate.likely_origin_match is False


def test_zero_total_is_safe():
    """Test that a zero total never divides by zero."""
    estimate = estimate_origin("dev", {}, {}, 0)

    assert estimate.probability == 0.0
    assert estimate.likely_origin_match is False
    assert estimate.dominant_offset == UNKNOWN_OFFSET


def test_custom_rules():
    """Test configurable target labels and working hours window."""
    rules = OriginRules(target_labels=frozenset({"+05:30"}), working_hours_start=20,
                        working_hours_end=23)
    samples = [sample(21, "+00:00")] * 7 + [sample(3, "+05:30", 5)] * 3

    estimate = analyze_samples("dev", samples, rules)

    assert estimate.probability == pytest.approx(0.3)
    assert estimate.dominant_offset == "+00:00"
    assert estimate.likely_origin_match is True
