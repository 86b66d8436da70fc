"""Shared helpers for HideSync libraries."""
