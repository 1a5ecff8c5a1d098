"""Billing and staffing consistency engine for project time tracking."""
