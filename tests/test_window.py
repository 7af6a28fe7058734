"""Tests for rolling window computation."""

from datetime import UTC, datetime, timedelta

from exposure_chain.chains.window import Window, compute_window, retention_boundary

NOW = datetime(2026, 6, 1, tzinfo=UTC)


class TestRetentionBoundary:
    def test_subtracts_days(self):
        assert retention_boundary(180, NOW) == NOW - timedelta(days=180)


class TestComputeWindow:
    """Tests for compute_window."""

    def test_anchored_to_hop_date(self):
        """Start is the hop date minus incubation, end is now."""
        hop = NOW - timedelta(days=10)
        window = compute_window(hop, 30, retention_boundary(180, NOW), now=NOW)
        assert window.start == hop - timedelta(days=30)
        assert window.end == NOW

    def test_start_clamped_to_retention(self):
        hop = NOW - timedelta(days=170)
        boundary = retention_boundary(180, NOW)
        window = compute_window(hop, 30, boundary, now=NOW)
        assert window.start == boundary

    def test_first_hop_end_capped(self):
        """An explicit end earlier than now bounds the window."""
        end = NOW - timedelta(days=2)
        window = compute_window(NOW - timedelta(days=5), 14, NOW - timedelta(days=180), end, NOW)
        assert window.end == end

    def test_end_never_after_now(self):
        window = compute_window(
            NOW, 14, NOW - timedelta(days=180), end=NOW + timedelta(days=3), now=NOW
        )
        assert window.end == NOW

    def test_empty_window(self):
        """A start after the end yields an empty window with no members."""
        boundary = NOW - timedelta(days=5)
        window = compute_window(
            NOW - timedelta(days=40), 14, boundary, end=NOW - timedelta(days=10), now=NOW
        )
        assert window.is_empty
        assert not window.contains(NOW - timedelta(days=7))


class TestWindow:
    def test_contains_is_inclusive(self):
        start = NOW - timedelta(days=1)
        window = Window(start=start, end=NOW)
        assert window.contains(start)
        assert window.contains(NOW)
        assert not window.contains(NOW + timedelta(seconds=1))
