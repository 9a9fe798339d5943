"""
Gateway services: downstream registry and HTTP client, tokens, authentication
and health reporting.
"""
