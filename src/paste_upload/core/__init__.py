"""Data model, exceptions and shared helpers for the upload pipeline."""
