"""Readers for project artifacts: files, config, manifests, HTTP."""
