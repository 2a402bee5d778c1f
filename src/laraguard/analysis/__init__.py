"""Core analysis engine: models, PHP syntax helpers, taint classification."""
