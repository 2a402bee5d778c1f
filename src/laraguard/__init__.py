"""laraguard: static security analysis for Laravel applications."""

__version__ = "0.1.0"
