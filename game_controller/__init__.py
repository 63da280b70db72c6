# /game_controller/__init__.py

"""
Dungeon Crawler Controller Package

Central coordination for the save store:
- Logging configuration and management
- Environment-driven configuration
"""
