"""Test suite for dominion-deploy.

Test organization:
- fixtures/: Pipeline definitions and a recording command runner
- unit/: Unit tests for individual modules

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
