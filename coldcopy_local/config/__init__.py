"""
ColdCopy Configuration - Runtime settings and prompt templates
"""

from .prompts import PromptManager, fill_template
from .settings import ConfigManager, get_tone_guidance, map_copy_length, parse_follow_up_count

__all__ = [
    'PromptManager',
    'ConfigManager',
    'fill_template',
    'get_tone_guidance',
    'map_copy_length',
    'parse_follow_up_count'
]
