"""Browser tests against a demo application."""
