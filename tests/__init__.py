"""claimbot Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - channels/: queue, dispatcher, merger, notifier, barrier, command router
  - marks/: store, definitions, mark engine, CI propagation
- integration/: HTTP API routes driven through the app lifespan

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/marks/

    # With coverage
    pytest --cov=claimbot --cov-report=term-missing
"""
