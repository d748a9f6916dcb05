"""Shared helpers for the feedsync application."""
