"""Request and response schemas for the gateway API."""
