"""
Paper collector research backend.

This package contains the query-processing core of the paper collection
application: credential handling, result persistence, simulated progress
reporting and the orchestrator that drives a research query against the
external extraction service.
"""
