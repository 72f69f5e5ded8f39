"""Logging, rate limiting and text helpers."""
