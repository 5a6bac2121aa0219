"""Tests for fixed-window key derivation."""

from limitgate.app.ratelimit.window import derive_window_key, window_bounds


class TestDeriveWindowKey:
    """Tests for derive_window_key."""

    def test_key_format(self):
        """Key is the resource key followed by the bucket number."""
        assert derive_window_key("rate_limit:/hello", 12_345, 1000) == "rate_limit:/hello:12"

    def test_deterministic(self):
        """Identical inputs always derive the same key."""
        first = derive_window_key("k", 1_700_000_000_123, 1000)
        second = derive_window_key("k", 1_700_000_000_123, 1000)
        assert first == second

    def test_same_bucket_shares_key(self):
        """Timestamps inside one bucket share a key, including both edges."""
        window = 1000
        keys = {
            derive_window_key("k", t, window)
            for t in (5000, 5001, 5500, 5999)
        }
        assert keys == {"k:5"}

    def test_adjacent_buckets_differ(self):
        """The last millisecond of a bucket and the first of the next never collide."""
        assert derive_window_key("k", 5999, 1000) != derive_window_key("k", 6000, 1000)

    def test_windows_separated_by_more_than_duration_differ(self):
        """Two calls further apart than the window never share a key."""
        window = 1000
        t1 = 1_700_000_000_000
        t2 = t1 + window + 1
        assert derive_window_key("k", t1, window) != derive_window_key("k", t2, window)

    def test_floor_division_equivalence(self):
        """Keys are equal exactly when floor(t / w) is equal."""
        window = 250
        for t1 in range(0, 1000, 37):
            for t2 in range(t1, 1000, 41):
                same_bucket = t1 // window == t2 // window
                same_key = derive_window_key("k", t1, window) == derive_window_key("k", t2, window)
                assert same_bucket == same_key

    def test_distinct_resources_never_share_key(self):
        assert derive_window_key("a", 1000, 1000) != derive_window_key("b", 1000, 1000)

    def test_float_timestamp_is_floored(self):
        assert derive_window_key("k", 1999.9, 1000) == "k:1"


class TestWindowBounds:
    """Tests for window_bounds."""

    def test_bounds(self):
        assert window_bounds(12_345, 1000) == (12_000, 13_000)

    def test_bounds_on_boundary(self):
        assert window_bounds(13_000, 1000) == (13_000, 14_000)
