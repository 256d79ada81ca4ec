"""
Imagery Module

Database models for processed image artifacts.
"""

from src.modules.imagery.models import ProcessedImageRecord

__all__ = ["ProcessedImageRecord"]
