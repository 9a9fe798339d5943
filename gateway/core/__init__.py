"""
Core gateway building blocks: application factory, request context,
shared state backends and resilience infrastructure.
"""
