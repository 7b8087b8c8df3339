"""Shared money, calendar and retry helpers."""
