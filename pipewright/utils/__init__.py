"""Shared helpers for subprocess environments, captured text and JSON Schema validation."""
