"""
Differential correlation testing and multiple testing correction
"""

from .dcvar_z import DCVAR_ZTest
from .correction import DCVAR_Prune, get_correction

__all__ = ['DCVAR_ZTest', 'DCVAR_Prune', 'get_correction']
