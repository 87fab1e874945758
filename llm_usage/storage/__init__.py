"""Keyed persistence of saved usage reports."""
