# Shutterlink Test Suite
"""
Test suite for the Shutterlink access-control and lifecycle core.

Unit tests exercise services against mocked repositories; integration
tests run the real repositories on a temporary SQLite database.
"""
