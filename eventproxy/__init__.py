"""Eventbrite proxy: cached, enriched monthly event listings."""
