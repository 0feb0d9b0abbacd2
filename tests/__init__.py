"""Test suite for NEPSE-Pulse.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the nepsepulse/ package hierarchy for discoverability.

Testing Philosophy:
    - Use pytest-mock and an in-memory Page Driver for browser isolation
    - Focus coverage on the pagination stop conditions and cache expiry
    - Avoid external dependencies - all I/O should be mocked
"""
