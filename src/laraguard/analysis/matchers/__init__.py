"""Sink pattern matchers, one per vulnerability family."""
