"""
Core modules for AI Model Sync.

This package contains the sync pipeline: validation, change detection,
retry and cancellation, orchestration, publishing and cost estimation.
"""
