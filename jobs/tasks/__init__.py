"""Periodic task coroutines run by the scheduler."""
