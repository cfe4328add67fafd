"""Domain services.

Transport-free game logic imported by the HTTP routes and socket handlers.
"""
