"""Replay a captured gateway event stream through the sync core."""
