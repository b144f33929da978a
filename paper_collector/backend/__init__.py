"""
Backend package for the paper collector.

Contains the persistence layer, the credential and result adapters, the
extraction client wrapper and the query orchestrator.
"""
