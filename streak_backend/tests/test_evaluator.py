from streakflow.evaluator import (
    StreakEvaluation,
    day_status,
    evaluate_streak,
    summarize_days,
    today_progress,
)


class TestScenarios:
    def test_single_perfect_day_is_streak_of_one(self, make_record):
        history = [make_record("2024-01-01", title="Read", completed=True)]
        result = evaluate_streak(history, "2024-01-01", "2024-01-01")
        assert result.streak == 1
        assert result.breach_date is None

    def test_incomplete_yesterday_is_breach(self, make_record):
        history = [
            make_record("2024-01-01", completed=True),
            make_record("2024-01-02", completed=False),
        ]
        result = evaluate_streak(history, "2024-01-03", "2024-01-01")
        assert result.streak == 0
        assert result.breach_date == "2024-01-02"

    def test_breach_survives_until_join_date_passes_it(self, make_record):
        history = [
            make_record("2024-01-01", completed=True),
            make_record("2024-01-02", completed=False),
        ]
        assert evaluate_streak(history, "2024-01-05", "2024-01-01").breach_date == "2024-01-02"

        moved = evaluate_streak(history, "2024-01-05", "2024-01-03")
        assert moved.breach_date is None
        assert moved.streak == 0


class TestWalk:
    def test_same_history_gives_same_result(self, make_record):
        history = [
            make_record("2024-01-08", completed=True),
            make_record("2024-01-09", completed=False),
            make_record("2024-01-10", completed=True),
        ]
        first = evaluate_streak(history, "2024-01-10", "2024-01-01")
        second = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert first == second
        assert isinstance(first, StreakEvaluation)

    def test_each_perfect_day_adds_one(self, make_record):
        history = [make_record(d) for d in ("2024-01-07", "2024-01-08", "2024-01-09")]
        assert evaluate_streak(history, "2024-01-10", "2024-01-01").streak == 3

        history.append(make_record("2024-01-06"))
        assert evaluate_streak(history, "2024-01-10", "2024-01-01").streak == 4

    def test_idle_days_neither_count_nor_break(self, make_record):
        history = [make_record("2024-01-06"), make_record("2024-01-08")]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.streak == 2
        assert result.breach_date is None
        assert result.perfect_days == ("2024-01-08", "2024-01-06")

    def test_partial_day_stops_the_walk(self, make_record):
        history = [
            make_record("2024-01-07"),
            make_record("2024-01-08", completed=True),
            make_record("2024-01-08", completed=False),
            make_record("2024-01-09"),
        ]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.streak == 1
        assert result.breach_date == "2024-01-08"

    def test_incomplete_today_is_not_a_breach(self, make_record):
        history = [
            make_record("2024-01-09"),
            make_record("2024-01-10", completed=True),
            make_record("2024-01-10", completed=False),
        ]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.streak == 1
        assert result.breach_date is None

    def test_perfect_today_counts(self, make_record):
        history = [make_record("2024-01-09"), make_record("2024-01-10")]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.streak == 2
        assert result.perfect_days == ("2024-01-10", "2024-01-09")

    def test_records_before_join_date_are_ignored(self, make_record):
        history = [make_record("2024-01-05", completed=False), make_record("2024-01-09")]
        result = evaluate_streak(history, "2024-01-10", "2024-01-08")
        assert result.streak == 1
        assert result.breach_date is None

    def test_future_records_are_ignored(self, make_record):
        history = [make_record("2024-01-12", completed=False), make_record("2024-01-09")]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.streak == 1
        assert result.breach_date is None

    def test_empty_history(self):
        result = evaluate_streak([], "2024-01-10", "2024-01-01")
        assert result.streak == 0
        assert result.breach_date is None


class TestInvariantViolations:
    def test_walk_stops_at_safety_bound(self, make_record):
        history = [make_record("2023-12-01", completed=False)]
        history += [make_record(f"2024-01-0{d}") for d in range(4, 10)]

        unbounded = evaluate_streak(history, "2024-01-10", "2023-12-01")
        assert unbounded.streak == 6
        assert unbounded.breach_date == "2023-12-01"

        bounded = evaluate_streak(history, "2024-01-10", "2023-12-01", max_days=3)
        assert bounded.streak == 3
        assert bounded.breach_date is None

    def test_default_bound_is_ten_years(self, make_record):
        history = [make_record("1990-01-01", completed=False)]
        result = evaluate_streak(history, "2024-01-10", "1990-01-01")
        assert result.breach_date is None

    def test_malformed_dates_are_skipped(self, make_record):
        history = [
            make_record(None),
            make_record("2024/01/09", completed=False),
            make_record("2024-13-01", completed=False),
            make_record(""),
            make_record("2024-01-09"),
        ]
        result = evaluate_streak(history, "2024-01-10", "2024-01-01")
        assert result.skipped == 4
        assert result.streak == 1
        assert result.breach_date is None

    def test_unparseable_join_date_bounds_by_oldest_record(self, make_record):
        history = [make_record("2024-01-08", completed=False), make_record("2024-01-09")]
        for join in ("garbage", None):
            result = evaluate_streak(history, "2024-01-10", join)
            assert result.streak == 1
            assert result.breach_date == "2024-01-08"


class TestCalendar:
    def test_day_status(self, make_record):
        history = [
            make_record("2024-01-08"),
            make_record("2024-01-09", completed=True),
            make_record("2024-01-09", completed=False),
        ]
        assert day_status(history, "2024-01-08") == "complete"
        assert day_status(history, "2024-01-09") == "partial"
        assert day_status(history, "2024-01-10") == "none"

    def test_summarize_days_covers_every_day(self, make_record):
        history = [
            make_record("2024-01-08"),
            make_record("2024-01-10", completed=False),
            make_record("2024-01-10", completed=True),
            make_record("2024-01-11"),
        ]
        days = summarize_days(history, "2024-01-08", "2024-01-10")
        assert [d.date for d in days] == ["2024-01-08", "2024-01-09", "2024-01-10"]
        assert [d.status for d in days] == ["complete", "none", "partial"]
        assert (days[2].total, days[2].completed) == (2, 1)

    def test_today_progress(self, make_record):
        records = [make_record("2024-01-10"), make_record("2024-01-10", completed=False)]
        assert today_progress(records) == (1, 2)
        assert today_progress([]) == (0, 0)
