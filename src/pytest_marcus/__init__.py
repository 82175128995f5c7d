"""Markdown-driven black-box HTTP API tests.

The `pytest_marcus` package turns human-readable markdown files into
executable HTTP API tests and runs them against live endpoints.

Key features:
- markdown test files parsed into immutable request/assertion definitions;
- a retrying execution engine with type-aware assertions and
  variables propagated between tests of the same file;
- sequential or bounded-parallel scheduling with deterministic reporting;
- a command-line runner and a pytest plugin collecting `test_*.md` files.
"""
