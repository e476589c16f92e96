"""Booking documents, service forms and the result download gate."""
