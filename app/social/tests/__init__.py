"""
Tests for the social app.
"""
