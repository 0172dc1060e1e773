"""Packaged JSON schemas for hookgate configuration."""
