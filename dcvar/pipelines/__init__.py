"""
Batch pipelines
"""

from .dcvar import DcVarPipeline

__all__ = ['DcVarPipeline']
