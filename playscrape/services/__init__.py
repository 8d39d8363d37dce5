"""Extraction, image, tracking and export services."""
