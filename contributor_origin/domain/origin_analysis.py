"""Origin inference from commit timestamp histories.

Two steps, both pure functions:

* ``aggregate_samples`` folds a sample sequence into a timezone histogram
  (keyed on the literal offset label) and an hour histogram (keyed on the
  local hour in the sample's own offset).
* ``estimate_origin`` turns the histograms into a probability and a boolean
  classification using three signals combined with OR:

  1. share of samples whose offset label is a target label, firing above
     ``probability_threshold``;
  2. the dominant offset label is itself a target label;
  3. share of samples committed inside the working-hours window, firing
     above ``working_hours_threshold``.

``probability`` always reports signal 1, whichever signal decided the
classification. A contributor can therefore be classified as a match with
probability 0.0, and only a probability above ``probability_threshold``
implies a match.
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple
from contributor_origin.domain.models import (
    CommitTimestampSample,
    HourHistogram,
    OriginEstimate,
    TimezoneHistogram,
)


DEFAULT_TARGET_LABELS = frozenset({"+0800", "+08:00", "CST", "Asia/Shanghai"})
UNKNOWN_OFFSET = "Unknown"


@dataclass(frozen=True)
class OriginRules:
    """Tunable parameters of the origin estimator."""
    target_labels: FrozenSet[str] = DEFAULT_TARGET_LABELS
    probability_threshold: float = 0.7
    working_hours_start: int = 9
    working_hours_end: int = 18
    working_hours_threshold: float = 0.6

    def is_target_label(self, label: str) -> bool:
        return label in self.target_labels

    def is_working_hour(self, hour: int) -> bool:
        return self.working_hours_start <= hour <= self.working_hours_end


DEFAULT_RULES = OriginRules()


def aggregate_samples(
    samples: Iterable[CommitTimestampSample]
) -> Optional[Tuple[TimezoneHistogram, HourHistogram]]:
    """Fold samples into timezone and hour histograms in a single pass.

    Args:
        samples: Commit timestamp samples of one contributor

    Returns:
        (timezone_histogram, hour_histogram), or None when there are no samples
    """
    timezone_histogram: TimezoneHistogram = {}
    hour_histogram: HourHistogram = {}

    for sample in samples:
        label = sample.offset_label
        timezone_histogram[label] = timezone_histogram.get(label, 0) + 1
        hour = sample.local_hour
        hour_histogram[hour] = hour_histogram.get(hour, 0) + 1

    if not timezone_histogram:
        return None
    return timezone_histogram, hour_histogram


def dominant_offset(timezone_histogram: TimezoneHistogram) -> str:
    """Most frequent offset label; ties go to the first label encountered."""
    if not timezone_histogram:
        return UNKNOWN_OFFSET
    # max() keeps the first maximal item in iteration order
    return max(timezone_histogram.items(), key=lambda item: item[1])[0]


def offset_membership_ratio(
    timezone_histogram: TimezoneHistogram,
    total: int,
    rules: OriginRules = DEFAULT_RULES
) -> float:
    if total <= 0:
        return 0.0
    matching = sum(
        count for label, count in timezone_histogram.items()
        if rules.is_target_label(label)
    )
    return matching / total


def working_hours_ratio(
    hour_histogram: HourHistogram,
    total: int,
    rules: OriginRules = DEFAULT_RULES
) -> float:
    if total <= 0:
        return 0.0
    in_window = sum(
        count for hour, count in hour_histogram.items()
        if rules.is_working_hour(hour)
    )
    return in_window / total


def estimate_origin(
    login: str,
    timezone_histogram: TimezoneHistogram,
    hour_histogram: HourHistogram,
    total: int,
    rules: OriginRules = DEFAULT_RULES
) -> OriginEstimate:
    """Compute the origin estimate of one contributor.

    Args:
        login: Contributor login the estimate belongs to
        timezone_histogram: Sample counts per offset label
        hour_histogram: Sample counts per local hour
        total: Number of samples behind the histograms
        rules: Target labels, thresholds and working-hours window

    Returns:
        OriginEstimate whose probability is the offset-membership ratio
    """
    if total <= 0:
        return OriginEstimate(
            login=login,
            total_samples=0,
            timezone_histogram=dict(timezone_histogram),
            hour_histogram=dict(hour_histogram),
            dominant_offset=UNKNOWN_OFFSET,
            probability=0.0,
            likely_origin_match=False
        )

    probability = offset_membership_ratio(timezone_histogram, total, rules)
    common = dominant_offset(timezone_histogram)

    match = (
        probability > rules.probability_threshold
        or rules.is_target_label(common)
        or working_hours_ratio(hour_histogram, total, rules) > rules.working_hours_threshold
    )

    return OriginEstimate(
        login=login,
        total_samples=total,
        timezone_histogram=dict(timezone_histogram),
        hour_histogram=dict(hour_histogram),
        dominant_offset=common,
        probability=probability,
        likely_origin_match=match
    )


def analyze_samples(
    login: str,
    samples: List[CommitTimestampSample],
    rules: OriginRules = DEFAULT_RULES
) -> Optional[OriginEstimate]:
    """Aggregate and estimate in one call; None when there are no samples."""
    histograms = aggregate_samples(samples)
    if histograms is None:
        return None
    timezone_histogram, hour_histogram = histograms
    return estimate_origin(login, timezone_histogram, hour_histogram, len(samples), rules)
