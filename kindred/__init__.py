"""Kindred: memory-augmented persona conversations."""
