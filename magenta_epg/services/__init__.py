"""
Services package for the Magenta EPG feed

This package contains all business logic and service layer components.
"""
from magenta_epg.services.regeneration_service import (
    RegenerationController,
    RegenerationResult,
    get_regeneration_controller,
)
from magenta_epg.services.scheduler_service import feed_scheduler

__all__ = [
    'RegenerationController',
    'RegenerationResult',
    'get_regeneration_controller',
    'feed_scheduler',
]
