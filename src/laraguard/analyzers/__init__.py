"""Security analyzers for Laravel projects."""
