"""MediConnect API gateway."""
