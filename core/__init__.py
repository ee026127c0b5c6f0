"""
Core utilities and configuration for the hot-deal ingestion pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application settings and the PipelineConfig value object
    database: Async engine and session factory management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings, PipelineConfig
    from core.database import build_engine, build_session_maker
    from core.exceptions import FetchFailure, PersistFailure
    from core.logging import setup_logging

Example:
    setup_logging()
    config = PipelineConfig.from_settings(settings)

    engine = build_engine()
    session_maker = build_session_maker(engine)
    async with session_maker() as session:
        pass
"""

__all__ = [
    "settings",
    "Settings",
    "PipelineConfig",
    "AffiliateConfig",
    "build_engine",
    "build_session_maker",
    "setup_logging",
    # Exceptions
    "PipelineException",
    "ConfigurationError",
    "RetryableError",
    "NonRetryableError",
    "FetchFailure",
    "PageLoadTimeout",
    "ParseFailure",
    "PersistFailure",
    "CategoryResolutionError",
    "AffiliateConversionError",
]
