"""Test suite for the pytest-marcus package.

This package contains unit and integration tests validating
markdown parsing, request execution, scheduling, command line
reporting, and pytest integration of markdown HTTP tests.
"""
