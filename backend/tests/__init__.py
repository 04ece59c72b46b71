"""
Study Metrics Test Suite

Test Structure:
    tests/
    ├── conftest.py          # Shared fixtures (SQLite session, fixed clock, scenarios)
    ├── helpers.py           # Event builders and in-memory collaborators
    └── unit/                # One module per component

Running Tests:
    # Run all tests
    pytest backend/tests/ -v
"""
