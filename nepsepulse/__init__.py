"""NEPSE-Pulse core source package.

This package contains the extraction engine for NEPSE market data tables:
- browser: Playwright browser lifecycle and the Page Driver used by the engine
- sources: the four NEPSE data sources and their per-source settings
- records: record schemas and the positional row normalizer
- monitor: blank-cell watchdog for markup drift
- pagination: the page-by-page extraction controller
- cache: in-memory TTL cache shared across scrapes
- orchestrator: cache-aware scrape entry point and response envelopes
- reporter: Pandas/Plotly-based exports
- logger: Structured JSON logging configuration
- exceptions: Custom exception hierarchy
"""

__version__ = "1.0.0"
