"""
MooncrestBot - TempVoice Package
================================

Join-to-create personal voice channels.
"""

from src.services.tempvoice.service import TempVoiceService

__all__ = ["TempVoiceService"]
