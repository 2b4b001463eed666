"""
Tests for authentication app.

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_services.py
"""
