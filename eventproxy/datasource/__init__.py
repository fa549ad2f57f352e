"""
Upstream data sources.
"""

from eventproxy.datasource.eventbrite import EventbriteClient

__all__ = ["EventbriteClient"]
