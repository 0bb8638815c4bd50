"""
Read-side dashboard, reports, health and retention cleanup.
"""
