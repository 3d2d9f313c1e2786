"""Harness tests that run without a browser."""
