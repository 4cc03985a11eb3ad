"""Batch executor and scheduler."""
