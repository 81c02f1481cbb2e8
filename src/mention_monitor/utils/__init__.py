"""Shared helpers for dates, deadlines, text and URLs."""
