"""
Membership chain core.

Chain access and event synchronization engine for the membership/referral
platform: RPC failover client, rate limiting, TTL cache, cached chain
queries, paid transaction orchestration and event ingestion.
"""

__version__ = "1.0.0"
