"""Tests for the period resolver: synthetic ends, session walk, authoritative override"""
from datetime import date

from academy.domain.periods import (
    SubscriptionPeriod, build_periods_map, monthly_period_end, resolve_member_periods,
)
from academy.domain.records import (
    Branch, Member, PaymentPeriodRow, MODE_CALENDAR_MONTH, MODE_SESSION_COUNT,
)
from academy.domain.weekday import Weekday

BRANCH = Branch(id="b1", name="North", training_days=frozenset({Weekday.SA, Weekday.TU}))


def _member(**kw) -> Member:
    defaults = dict(id="m1", name="Ali", branch_id="b1", subscription_mode=MODE_CALENDAR_MONTH)
    defaults.update(kw)
    return Member(**defaults)


def _row(start, end=None, member_id="m1") -> PaymentPeriodRow:
    return PaymentPeriodRow(member_id=member_id, start_date=start, end_date=end)


class TestMonthlyPeriodEnd:
    def test_mid_month(self):
        assert monthly_period_end(date(2024, 1, 15)) == date(2024, 2, 14)

    def test_first_of_month(self):
        assert monthly_period_end(date(2024, 1, 1)) == date(2024, 1, 31)

    def test_end_of_january_leap_year(self):
        assert monthly_period_end(date(2024, 1, 31)) == date(2024, 2, 29)

    def test_end_of_january_common_year(self):
        assert monthly_period_end(date(2023, 1, 31)) == date(2023, 2, 28)

    def test_day_that_exists_next_month(self):
        assert monthly_period_end(date(2024, 1, 29)) == date(2024, 2, 28)

    def test_crosses_year(self):
        assert monthly_period_end(date(2024, 12, 31)) == date(2025, 1, 30)


class TestResolveMemberPeriods:
    def test_explicit_end_used_verbatim(self):
        periods = resolve_member_periods(
            [_row(date(2024, 1, 1), date(2024, 1, 20)), _row(date(2024, 2, 1))],
            _member(), BRANCH,
        )
        assert periods[0] == SubscriptionPeriod(date(2024, 1, 1), date(2024, 1, 20))

    def test_calendar_month_synthetic_end(self):
        periods = resolve_member_periods([_row(date(2024, 1, 15))], _member(), BRANCH)
        assert periods == [SubscriptionPeriod(date(2024, 1, 15), date(2024, 2, 14))]

    def test_session_count_synthetic_end(self):
        member = _member(subscription_mode=MODE_SESSION_COUNT, session_target=4)
        periods = resolve_member_periods([_row(date(2024, 3, 2))], member, BRANCH)
        assert periods == [SubscriptionPeriod(date(2024, 3, 2), date(2024, 3, 12))]

    def test_session_count_without_branch_is_open_ended(self):
        member = _member(subscription_mode=MODE_SESSION_COUNT, session_target=4)
        periods = resolve_member_periods([_row(date(2024, 3, 2))], member, None)
        assert periods[0].end is None

    def test_session_count_branch_without_days_is_open_ended(self):
        member = _member(subscription_mode=MODE_SESSION_COUNT, session_target=4)
        empty = Branch(id="b1", name="North")
        assert resolve_member_periods([_row(date(2024, 3, 2))], member, empty)[0].end is None

    def test_session_count_non_positive_target_is_open_ended(self):
        member = _member(subscription_mode=MODE_SESSION_COUNT, session_target=0)
        assert resolve_member_periods([_row(date(2024, 3, 2))], member, BRANCH)[0].end is None

    def test_unknown_mode_is_open_ended(self):
        member = _member(subscription_mode="weekly")
        assert resolve_member_periods([_row(date(2024, 3, 2))], member, BRANCH)[0].end is None

    def test_member_end_overrides_last_period(self):
        """Computed end would be 2024-04-10; the member record says 2024-05-01."""
        member = _member(end_date=date(2024, 5, 1))
        periods = resolve_member_periods(
            [_row(date(2024, 2, 1)), _row(date(2024, 3, 11))], member, BRANCH,
        )
        assert periods[0] == SubscriptionPeriod(date(2024, 2, 1), date(2024, 2, 29))
        assert periods[1] == SubscriptionPeriod(date(2024, 3, 11), date(2024, 5, 1))

    def test_member_end_overrides_stored_end_of_last_row(self):
        member = _member(end_date=date(2024, 4, 1))
        periods = resolve_member_periods(
            [_row(date(2024, 3, 1), date(2024, 3, 31))], member, BRANCH,
        )
        assert periods[-1].end == date(2024, 4, 1)

    def test_rows_sorted_by_start(self):
        periods = resolve_member_periods(
            [_row(date(2024, 3, 1), date(2024, 3, 31)), _row(date(2024, 1, 1), date(2024, 1, 31))],
            _member(), BRANCH,
        )
        assert [p.start for p in periods] == [date(2024, 1, 1), date(2024, 3, 1)]

    def test_row_without_start_is_skipped(self):
        periods = resolve_member_periods(
            [_row(None, date(2024, 1, 31)), _row(date(2024, 3, 1), date(2024, 3, 31))],
            _member(), BRANCH,
        )
        assert periods == [SubscriptionPeriod(date(2024, 3, 1), date(2024, 3, 31))]

    def test_iso_strings_are_parsed(self):
        periods = resolve_member_periods(
            [_row("not-a-date", "2024-01-31"), _row("2024-01-15", "2024-02-20")],
            _member(), BRANCH,
        )
        assert periods == [SubscriptionPeriod(date(2024, 1, 15), date(2024, 2, 20))]

    def test_unparseable_row_end_stays_open(self):
        periods = resolve_member_periods(
            [_row("2024-01-15", "31/02/2024"), _row("2024-03-01", "2024-03-31")],
            _member(), None,
        )
        assert periods[0] == SubscriptionPeriod(date(2024, 1, 15), None)
        assert periods[1] == SubscriptionPeriod(date(2024, 3, 1), date(2024, 3, 31))

    def test_unparseable_member_end_leaves_last_period_open(self):
        periods = resolve_member_periods(
            [_row(date(2024, 1, 1), date(2024, 1, 31)), _row(date(2024, 3, 1), date(2024, 3, 31))],
            _member(end_date="sometime in May"), BRANCH,
        )
        assert periods[0].end == date(2024, 1, 31)
        assert periods[1] == SubscriptionPeriod(date(2024, 3, 1), None)

    def test_no_rows(self):
        assert resolve_member_periods([], _member(), BRANCH) == []


class TestBuildPeriodsMap:
    def test_groups_by_member_and_uses_member_branch(self):
        members = [
            _member(id="m1"),
            _member(id="m2", subscription_mode=MODE_SESSION_COUNT, session_target=2),
        ]
        rows = [
            _row(date(2024, 3, 2), member_id="m2"),
            _row(date(2024, 1, 15), member_id="m1"),
        ]
        result = build_periods_map(rows, members, [BRANCH])
        assert result["m1"] == [SubscriptionPeriod(date(2024, 1, 15), date(2024, 2, 14))]
        assert result["m2"] == [SubscriptionPeriod(date(2024, 3, 2), date(2024, 3, 5))]

    def test_unknown_member_keeps_stored_ends_only(self):
        rows = [_row(date(2024, 1, 1), date(2024, 1, 31), member_id="ghost"),
                _row(date(2024, 2, 1), member_id="ghost")]
        result = build_periods_map(rows, [], [BRANCH])
        assert result["ghost"] == [
            SubscriptionPeriod(date(2024, 1, 1), date(2024, 1, 31)),
            SubscriptionPeriod(date(2024, 2, 1), None),
        ]

    def test_members_without_rows_are_absent(self):
        assert build_periods_map([], [_member()], [BRANCH]) == {}
