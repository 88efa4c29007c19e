"""
Catch 5 game engine and room server.
"""

__version__ = "1.0.0"
