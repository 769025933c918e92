"""Tests for the shielded pool."""
