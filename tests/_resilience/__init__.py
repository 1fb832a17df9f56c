"""Resilience tests.

This package covers cancellation, interleaving with other tasks and
error propagation while a poll is in progress.
"""
