from datetime import date, datetime, timedelta, timezone

from roombook.booking.recurrence import (
    EndCondition,
    RecurrencePattern,
    RecurrenceSeed,
    expand_occurrences,
)

UTC = timezone.utc
SEED_START = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)  # a Monday
SEED_END = datetime(2030, 1, 7, 10, 0, tzinfo=UTC)


def weekly(condition=EndCondition.never()):
    return RecurrenceSeed(SEED_START, SEED_END, RecurrencePattern.WEEKLY, condition)


def test_non_recurring_seed_yields_itself():
    seed = RecurrenceSeed(SEED_START, SEED_END, RecurrencePattern.NONE)
    occurrences = list(expand_occurrences(seed, None, None))
    assert [(o.index, o.start, o.end) for o in occurrences] == [(0, SEED_START, SEED_END)]


def test_count_yields_exactly_n_over_unbounded_window():
    occurrences = list(expand_occurrences(weekly(EndCondition.after(4)), None, None))
    assert [o.index for o in occurrences] == [0, 1, 2, 3]
    assert occurrences[3].start == SEED_START + timedelta(weeks=3)
    assert all(o.end - o.start == timedelta(hours=1) for o in occurrences)


def test_never_is_capped_per_pattern():
    def count(pattern):
        seed = RecurrenceSeed(SEED_START, SEED_END, pattern, EndCondition.never())
        return len(list(expand_occurrences(seed, None, None)))

    assert count(RecurrencePattern.DAILY) == 365
    assert count(RecurrencePattern.WEEKLY) == 52
    assert count(RecurrencePattern.BIWEEKLY) == 52
    assert count(RecurrencePattern.MONTHLY) == 24


def test_steps_per_pattern():
    def second_start(pattern):
        seed = RecurrenceSeed(SEED_START, SEED_END, pattern, EndCondition.after(2))
        return list(expand_occurrences(seed, None, None))[1].start

    assert second_start(RecurrencePattern.DAILY) == SEED_START + timedelta(days=1)
    assert second_start(RecurrencePattern.WEEKLY) == SEED_START + timedelta(days=7)
    assert second_start(RecurrencePattern.BIWEEKLY) == SEED_START + timedelta(days=14)
    assert second_start(RecurrencePattern.MONTHLY) == datetime(2030, 2, 7, 9, 0, tzinfo=UTC)


def test_monthly_keeps_day_of_month_and_clamps_month_end():
    start = datetime(2030, 1, 31, 9, 0, tzinfo=UTC)
    seed = RecurrenceSeed(start, start + timedelta(hours=1), RecurrencePattern.MONTHLY, EndCondition.after(3))
    starts = [o.start.date() for o in expand_occurrences(seed, None, None)]
    assert starts == [date(2030, 1, 31), date(2030, 2, 28), date(2030, 3, 31)]


def test_end_date_includes_the_whole_last_day():
    seed = weekly(EndCondition.until(date(2030, 1, 21)))
    starts = [o.start.date() for o in expand_occurrences(seed, None, None)]
    assert starts == [date(2030, 1, 7), date(2030, 1, 14), date(2030, 1, 21)]


def test_window_filters_occurrences():
    window_start = datetime(2030, 1, 14, 0, 0, tzinfo=UTC)
    window_end = datetime(2030, 1, 28, 0, 0, tzinfo=UTC)
    occurrences = list(expand_occurrences(weekly(), window_start, window_end))
    assert [o.index for o in occurrences] == [1, 2]


def test_window_edges_are_half_open():
    # Occurrence 1 is 09:00-10:00 on Jan 14
    touching_before = list(
        expand_occurrences(
            weekly(),
            datetime(2030, 1, 14, 8, 0, tzinfo=UTC),
            datetime(2030, 1, 14, 9, 0, tzinfo=UTC),
        )
    )
    touching_after = list(
        expand_occurrences(
            weekly(),
            datetime(2030, 1, 14, 10, 0, tzinfo=UTC),
            datetime(2030, 1, 14, 11, 0, tzinfo=UTC),
        )
    )
    assert touching_before == []
    assert touching_after == []


def test_expansion_is_restartable_and_deterministic():
    seed = RecurrenceSeed(SEED_START, SEED_END, RecurrencePattern.DAILY, EndCondition.never())
    window_start = datetime(2030, 3, 1, tzinfo=UTC)
    window_end = datetime(2030, 3, 10, tzinfo=UTC)
    first = list(expand_occurrences(seed, window_start, window_end))
    second = list(expand_occurrences(seed, window_start, window_end))
    assert first == second
    assert [o.index for o in first] == sorted(o.index for o in first)
    assert len(first) == 9


def test_expansion_is_lazy():
    seed = RecurrenceSeed(SEED_START, SEED_END, RecurrencePattern.DAILY, EndCondition.never())
    iterator = expand_occurrences(seed, None, None)
    assert next(iterator).index == 0
    assert next(iterator).index == 1


def test_occurrence_after_series_end_is_not_produced():
    seed = weekly(EndCondition.after(2))
    window_start = datetime(2030, 1, 21, tzinfo=UTC)
    window_end = datetime(2030, 1, 22, tzinfo=UTC)
    assert list(expand_occurrences(seed, window_start, window_end)) == []
