"""Test suite for the pytest-courier package.

This package contains unit and integration tests validating the
expression resolver, correlation, message validation, actions and
containers, the test runner, DSL parsing and the pytest integration.
"""
