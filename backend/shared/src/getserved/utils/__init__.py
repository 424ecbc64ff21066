"""Utility helpers for GetServed."""
