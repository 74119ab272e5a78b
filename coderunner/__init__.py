"""Managed execution engine for student-authored Python code."""
