"""
AppStorys - delivery core for the AppStorys marketing-overlay SDK

This package provides the non-UI resilience layer of the SDK:
- Account authentication with retry and secure token caching
- Durable offline outbox for analytics events, CSAT responses and user attributes
- Delivery service that falls back to the outbox when the network fails
"""

__version__ = "0.1.0"
__author__ = "AppStorys"
