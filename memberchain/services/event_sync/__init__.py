"""
Event synchronization.

Scans block windows for membership contract events and applies them to
the ledger exactly once, in (block, log index) order.
"""
