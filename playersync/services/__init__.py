"""
Services module for matching and synchronization logic.

This module organizes services into:
- core: Shared infrastructure (circuit breaker)
- sync: Matching, stat transformation and the sync orchestrator
"""
