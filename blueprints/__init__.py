"""
Blueprints package for the TourneyTrack bracket engine
Contains the JSON API over the tournament services
"""

from .api import api_bp

__all__ = ['api_bp']
