"""
SoloTasks Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast tests on the in-memory stores (no external dependencies)
- tests/unit/domain/   : Domain model tests
- tests/integration/   : Tests against PostgreSQL via testcontainers

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test business logic
- Integration tests: Slower, test real infrastructure interactions
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
