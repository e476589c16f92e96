"""Booking lifecycle: status table, repository and service."""
