"""Unit tests for notification priority ordering."""

import pytest


class TestPriorityEnum:
    """Priority enum has correct ordering: HIGH > MEDIUM > LOW."""

    def test_priority_values(self):
        from cpe_manager.alerts.types import Priority

        assert [p.value for p in Priority] == ["high", "medium", "low"]

    def test_priority_from_string(self):
        from cpe_manager.alerts.types import Priority

        assert Priority("medium") is Priority.MEDIUM

    def test_priority_ordering_high_gt_medium(self):
        from cpe_manager.alerts.types import Priority

        assert Priority.HIGH > Priority.MEDIUM

    def test_priority_ordering_medium_gt_low(self):
        from cpe_manager.alerts.types import Priority

        assert Priority.MEDIUM > Priority.LOW
        assert Priority.LOW <= Priority.LOW

    def test_priority_sort_descending(self):
        from cpe_manager.alerts.types import Priority

        ordered = sorted([Priority.LOW, Priority.HIGH, Priority.MEDIUM], reverse=True)
        assert ordered == [Priority.HIGH, Priority.MEDIUM, Priority.LOW]

    def test_priority_not_comparable_to_str(self):
        from cpe_manager.alerts.types import Priority

        with pytest.raises(TypeError):
            Priority.HIGH < "low"  # noqa: B015

    def test_priority_usable_as_dict_key(self):
        from cpe_manager.alerts.types import Priority

        assert {Priority.HIGH: 1}[Priority.HIGH] == 1


class TestPriorityAttributes:
    def test_every_priority_has_distinct_emoji(self):
        from cpe_manager.alerts.types import Priority

        assert len({p.emoji for p in Priority}) == 3

    def test_rank_follows_ordering(self):
        from cpe_manager.alerts.types import Priority

        assert [p.rank for p in Priority] == [2, 1, 0]
