import pytest

from ticketdesk.services.levels import (
    UNKNOWN_LEVEL,
    clamp_level,
    classify_level,
    higher_level,
    is_max_level,
    next_level,
    parse_ttr_minutes,
    priority_key,
)


class TestParseTtr:
    def test_hms(self):
        assert parse_ttr_minutes("01:30:30") == pytest.approx(90.5)

    def test_hours_and_minutes_only(self):
        assert parse_ttr_minutes("02:15") == 135

    def test_numbers_are_minutes(self):
        assert parse_ttr_minutes(45) == 45.0

    @pytest.mark.parametrize("bad", ["abc", "1:2:3:4", "aa:bb:cc"])
    def test_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_ttr_minutes(bad)


class TestClassifyLevel:
    @pytest.mark.parametrize(
        "category,ttr,expected",
        [
            ("K2", "01:31:00", "L3"),
            ("K3", "00:45:00", "L1"),
            ("K1", "10:00:00", "L7"),
            ("K1", "05:00:00", "L5"),
            ("K1", "02:31:00", "L4"),
            ("K1", "06:01:00", "L6"),
        ],
    )
    def test_examples(self, category, ttr, expected):
        assert classify_level(category, ttr) == expected

    def test_thresholds_are_strict(self):
        """Exactly on a boundary stays at the lower level."""
        assert classify_level("K3", "01:00:00") == "L1"
        assert classify_level("K3", "01:00:01") == "L2"
        assert classify_level("K1", "01:30:00") == "L2"
        assert classify_level("K2", "01:30:00") == "L2"

    def test_category_ceiling(self):
        assert classify_level("K3", "12:00:00") == "L2"
        assert classify_level("K2", "12:00:00") == "L3"

    @pytest.mark.parametrize("category,ttr", [(None, "01:00:00"), ("K1", None), ("K1", ""), ("K9", "01:00:00")])
    def test_unknown_when_missing(self, category, ttr):
        assert classify_level(category, ttr) == UNKNOWN_LEVEL


class TestLevelSteps:
    def test_next_level_steps_up(self):
        assert next_level("L2", "K1") == "L3"

    def test_next_level_capped_at_category_max(self):
        assert next_level("L3", "K2") == "L3"
        assert next_level("L2", "K3") == "L2"
        assert next_level("L7", "K1") == "L7"

    def test_next_level_clamps_out_of_range_first(self):
        assert next_level("L6", "K3") == "L2"

    def test_next_level_of_unknown_starts_at_l1(self):
        assert next_level(None, "K1") == "L1"

    def test_clamp(self):
        assert clamp_level("K2", "L5") == "L3"
        assert clamp_level("K1", "L5") == "L5"
        assert clamp_level("K1", "garbage") == "L1"

    def test_is_max_level(self):
        assert is_max_level("K3", "L2")
        assert not is_max_level("K1", "L6")

    def test_higher_level(self):
        assert higher_level("L2", "L4") == "L4"
        assert higher_level("L5", "L1") == "L5"


class TestPriority:
    def test_category_beats_level(self):
        assert priority_key("K1", "L1") < priority_key("K2", "L3")

    def test_higher_level_first_within_category(self):
        assert priority_key("K1", "L5") < priority_key("K1", "L2")
