"""Manifest-gated invoice operations service."""
