"""Tests for expiry resolution."""

from datetime import datetime, timedelta, timezone

import pytest

from ttlstore.exceptions import InvalidTimeDescription
from ttlstore.expiry import (
    DateDescription,
    Expiring,
    ExpiryPolicy,
    evaluate,
    is_expiring_field,
    resolve_duration,
    resolve_time_point,
    to_epoch_ms,
    to_milliseconds,
)

UTC = timezone.utc
NOON = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class TestResolveTimePoint:
    """Tests for resolve_time_point()."""

    def test_epoch_milliseconds(self):
        assert resolve_time_point(0) == datetime(1970, 1, 1, tzinfo=UTC)
        assert resolve_time_point(1_500) == datetime(1970, 1, 1, 0, 0, 1, 500_000, tzinfo=UTC)

    def test_aware_datetime_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        resolved = resolve_time_point(datetime(2024, 6, 1, 14, 0, tzinfo=plus_two))
        assert resolved == NOON
        assert resolved.utcoffset() == timedelta(0)

    def test_naive_datetime_is_local_time(self):
        naive = datetime(2024, 6, 1, 12, 0)
        assert resolve_time_point(naive) == naive.astimezone(UTC)

    def test_iso_string_with_zulu(self):
        assert resolve_time_point("2024-06-01T12:00:00Z") == NOON

    def test_iso_string_with_offset(self):
        assert resolve_time_point("2024-06-01T13:00:00+01:00") == NOON

    def test_date_only_string_is_utc_midnight(self):
        assert resolve_time_point("2024-06-01") == datetime(2024, 6, 1, tzinfo=UTC)

    def test_unparseable_string_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_time_point("next tuesday")

    def test_date_description_month_is_one_based(self):
        """March is month 3."""
        resolved = resolve_time_point(DateDescription(year=2024, month=3, day=5))
        assert resolved == datetime(2024, 3, 5).astimezone(UTC)

    def test_date_description_defaults_to_minimum(self):
        resolved = resolve_time_point(DateDescription(year=2024))
        assert resolved == datetime(2024, 1, 1, 0, 0).astimezone(UTC)

    def test_date_description_milliseconds(self):
        resolved = resolve_time_point(DateDescription(year=2024, month=1, day=1, millisecond=250))
        assert resolved == datetime(2024, 1, 1, 0, 0, 0, 250_000).astimezone(UTC)

    def test_mapping_is_a_date_description(self):
        resolved = resolve_time_point({"year": 2024, "month": 6, "day": 1, "hour": 12})
        assert resolved == datetime(2024, 6, 1, 12).astimezone(UTC)

    def test_mapping_with_unknown_keys_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_time_point({"year": 2024, "fortnight": 2})

    def test_out_of_range_description_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_time_point(DateDescription(year=2024, month=13))

    def test_boolean_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_time_point(True)

    def test_unsupported_type_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_time_point([2024, 6, 1])

    def test_invalid_description_is_a_value_error(self):
        with pytest.raises(ValueError):
            resolve_time_point("garbage")


class TestDurations:
    """Tests for duration helpers."""

    def test_milliseconds(self):
        assert resolve_duration(1500) == timedelta(seconds=1.5)

    def test_timedelta_passthrough(self):
        assert resolve_duration(timedelta(minutes=5)) == timedelta(minutes=5)

    def test_string_duration_raises(self):
        with pytest.raises(InvalidTimeDescription):
            resolve_duration("5m")

    def test_to_milliseconds(self):
        assert to_milliseconds(timedelta(seconds=2)) == 2000
        assert isinstance(to_milliseconds(timedelta(seconds=2)), int)
        assert to_milliseconds(0.5) == 0.5

    def test_to_epoch_ms(self):
        assert to_epoch_ms(NOON) == 1717243200000
        assert to_epoch_ms(1717243200000) == 1717243200000


class TestIsExpiringField:
    """Tests for the structural expiring-record test."""

    def test_expiring_instance(self):
        assert is_expiring_field(Expiring("x")) is True

    def test_mapping_with_value_and_max_age(self):
        assert is_expiring_field({"value": 1, "maxAge": 1000}) is True

    def test_mapping_with_value_and_expires(self):
        assert is_expiring_field({"value": 1, "expires": 0}) is True
        assert is_expiring_field({"value": 1, "expiresAt": 0}) is True

    def test_value_alone_is_not_expiring(self):
        assert is_expiring_field({"value": 1}) is False

    def test_expiry_key_without_value_is_not_expiring(self):
        assert is_expiring_field({"maxAge": 1000}) is False

    def test_non_mappings(self):
        assert is_expiring_field(None) is False
        assert is_expiring_field("value") is False
        assert is_expiring_field([("value", 1)]) is False


class TestEvaluate:
    """Tests for evaluate()."""

    def test_bare_value_always_valid(self):
        assert evaluate(42, NOON) == (True, 42)
        assert evaluate(None, NOON) == (True, None)

    def test_expiring_without_policy_never_expires(self):
        assert evaluate(Expiring("x"), datetime.max.replace(tzinfo=UTC)).valid is True

    def test_expires_at_boundary(self):
        """Valid strictly before expires_at, invalid at it."""
        item = Expiring.create("x", expires_at=NOON)
        assert evaluate(item, NOON - timedelta(milliseconds=1)) == (True, "x")
        assert evaluate(item, NOON) == (False, "x")

    def test_max_age_from_start_time(self):
        item = Expiring.create("x", max_age=60_000, start_time=NOON)
        assert evaluate(item, NOON + timedelta(seconds=59)).valid is True
        assert evaluate(item, NOON + timedelta(seconds=60)).valid is False

    def test_max_age_without_start_time_is_not_due(self):
        item = Expiring.create("x", max_age=1)
        assert evaluate(item, NOON + timedelta(days=365)).valid is True

    def test_start_time_at_epoch_zero_counts(self):
        """A start time of 0 is a real start time."""
        item = Expiring.create("x", max_age=1000, start_time=0)
        assert evaluate(item, NOON).valid is False

    def test_either_condition_expires(self):
        late_deadline = Expiring.create(
            "x", expires_at=NOON + timedelta(hours=1), max_age=60_000, start_time=NOON
        )
        assert evaluate(late_deadline, NOON + timedelta(minutes=1)).valid is False

        early_deadline = Expiring.create(
            "x", expires_at=NOON + timedelta(seconds=10), max_age=60_000, start_time=NOON
        )
        assert evaluate(early_deadline, NOON + timedelta(seconds=10)).valid is False
        assert evaluate(early_deadline, NOON + timedelta(seconds=9)).valid is True

    def test_uses_current_time_by_default(self):
        assert evaluate(Expiring.create("x", expires_at=0)).valid is False
        assert evaluate(Expiring.create("x", expires_at="9999-01-01")).valid is True

    def test_unresolvable_policy_rejected_at_create(self):
        with pytest.raises(InvalidTimeDescription):
            Expiring.create("x", expires_at="soon")
        with pytest.raises(InvalidTimeDescription):
            Expiring.create("x", max_age="5m")
        with pytest.raises(InvalidTimeDescription):
            Expiring("x", ExpiryPolicy(start_time={"year": 2024, "month": 13}))

    def test_evaluate_does_not_modify_field(self):
        item = Expiring.create("x", expires_at=0)
        evaluate(item, NOON)
        assert item == Expiring.create("x", expires_at=0)


class TestExpiryPolicy:
    """Tests for ExpiryPolicy and Expiring helpers."""

    def test_descriptions_resolved_on_construction(self):
        policy = ExpiryPolicy(
            expires_at="2024-06-01T12:00:00Z",
            max_age=60_000,
            start_time=1717243200000,
        )
        assert policy.expires_at == NOON
        assert policy.max_age == timedelta(minutes=1)
        assert policy.start_time == NOON
        assert policy.start_time.utcoffset() == timedelta(0)

    def test_equal_descriptions_give_equal_policies(self):
        loose = Expiring.create("x", max_age=60_000, start_time=1717243200000)
        exact = Expiring.create("x", max_age=timedelta(minutes=1), start_time=NOON)
        assert loose == exact

    def test_deadline_is_earliest_condition(self):
        policy = ExpiryPolicy(
            expires_at=NOON + timedelta(hours=1),
            max_age=timedelta(minutes=5),
            start_time=NOON,
        )
        assert policy.deadline() == NOON + timedelta(minutes=5)

    def test_no_deadline(self):
        assert ExpiryPolicy().deadline() is None
        assert ExpiryPolicy(max_age=1000).deadline() is None

    def test_huge_max_age_never_due(self):
        policy = ExpiryPolicy(max_age=timedelta.max, start_time=NOON)
        assert policy.deadline() is None

    def test_started_stamps_once(self):
        item = Expiring.create("x", max_age=1000)
        stamped = item.started(NOON)
        assert stamped.policy.start_time == NOON
        assert item.policy.start_time is None
        assert stamped.started(NOON + timedelta(hours=1)) is stamped

    def test_started_ignored_without_max_age(self):
        item = Expiring.create("x", expires_at=NOON)
        assert item.started(NOON) is item
