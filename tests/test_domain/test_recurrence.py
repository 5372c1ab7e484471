"""Tests for calendar helpers: month keys, session dates, session walk"""
import pytest
from datetime import date

from academy.domain.recurrence import (
    MonthKeyError, add_months, generate_session_dates, month_bounds, month_key,
    nth_session_date, parse_month_key, prev_month_key,
)
from academy.domain.weekday import Weekday

SAT_TUE = frozenset({Weekday.SA, Weekday.TU})


class TestMonthKeys:
    def test_parse(self):
        assert parse_month_key("2024-03") == (2024, 3)

    @pytest.mark.parametrize("bad", ["2024-3", "2024-13", "2024/03", "", "march"])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(MonthKeyError):
            parse_month_key(bad)

    def test_month_key(self):
        assert month_key(date(2024, 3, 17)) == "2024-03"

    def test_prev_month_crosses_year(self):
        assert prev_month_key("2024-01") == "2023-12"
        assert prev_month_key("2024-03") == "2024-02"

    def test_month_bounds_leap_february(self):
        assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds("2023-02") == (date(2023, 2, 1), date(2023, 2, 28))

    def test_add_months_clips_to_last_day(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 1, 15), -1) == date(2023, 12, 15)


class TestSessionDates:
    def test_saturdays_and_tuesdays_in_march_2024(self):
        days = [d.day for d in generate_session_dates(2024, 3, SAT_TUE)]
        assert days == [2, 5, 9, 12, 16, 19, 23, 26, 30]

    def test_sorted_and_all_matching(self):
        dates = generate_session_dates(2024, 2, {Weekday.TH})
        assert dates == [date(2024, 2, d) for d in (1, 8, 15, 22, 29)]
        assert all(d.weekday() == Weekday.TH for d in dates)

    def test_empty_schedule(self):
        assert generate_session_dates(2024, 3, set()) == []

    def test_every_day(self):
        assert len(generate_session_dates(2024, 2, set(Weekday))) == 29


class TestSessionWalk:
    def test_fourth_session(self):
        """2024-03-02 is a Saturday: sessions on 2, 5, 9, 12."""
        assert nth_session_date(date(2024, 3, 2), SAT_TUE, 4) == date(2024, 3, 12)

    def test_start_on_non_training_day(self):
        assert nth_session_date(date(2024, 3, 3), SAT_TUE, 1) == date(2024, 3, 5)

    def test_start_day_counts_when_it_is_a_training_day(self):
        assert nth_session_date(date(2024, 3, 2), SAT_TUE, 1) == date(2024, 3, 2)

    @pytest.mark.parametrize("sessions", [0, -3, None])
    def test_non_positive_target(self, sessions):
        assert nth_session_date(date(2024, 3, 2), SAT_TUE, sessions) is None

    def test_empty_schedule(self):
        assert nth_session_date(date(2024, 3, 2), set(), 4) is None

    def test_walk_is_bounded(self):
        """53 Mondays fit in the 365-day walk from 2024-01-01, 54 do not."""
        assert nth_session_date(date(2024, 1, 1), {Weekday.MO}, 53) == date(2024, 12, 30)
        assert nth_session_date(date(2024, 1, 1), {Weekday.MO}, 54) is None
