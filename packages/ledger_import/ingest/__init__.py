"""Readers for every supported input format."""
