"""Test doubles and canned vendor payloads shared by tests and the demo."""
