"""
ColdCopy Stages - Generation stage implementations
"""

from .base_stage import BaseStage
from .gap_repair import GapRepairer
from .email_generation import EmailGenerationStage
from .single_copy import SingleCopyStage

__all__ = [
    'BaseStage',
    'GapRepairer',
    'EmailGenerationStage',
    'SingleCopyStage'
]
