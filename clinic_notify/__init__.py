"""Clinic notification dispatch and delivery engine."""
