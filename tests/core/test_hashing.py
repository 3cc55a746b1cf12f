"""Tests for compute_hash."""

import hashlib

from stepwise.core.hashing import compute_hash


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("a", 1) == compute_hash("a", 1)

    def test_order_matters(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_length(self):
        assert len(compute_hash("x")) == 32
        assert len(compute_hash("x", length=16)) == 16

    def test_pipe_joined_sha256(self):
        expected = hashlib.sha256(b"job|name=foo(str)").hexdigest()[:32]
        assert compute_hash("job", "name=foo(str)") == expected
