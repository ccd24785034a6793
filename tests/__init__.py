"""
Progression Engine Test Suite
=============================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no database)
- tests/integration/   : Service tests against a real database (SQLite file,
                         or PostgreSQL via testcontainers)
- tests/conftest.py    : Shared fixtures, fake clock and factories

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test pure rules and infrastructure
- Integration tests: Exercise services end to end through the database
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
