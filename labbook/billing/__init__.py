"""Invoices, payments and finance reporting."""
