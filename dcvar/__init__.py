"""
dcVar: differential correlation of gene expression conditioned on variant genotype

For every genetic variant, subjects are split into case and control groups by a
genetic model, and all gene-gene correlations are compared between the groups
with a Fisher Z test. Gene pairs are tested in parallel with Numba kernels.
"""

import os
import warnings

# Suppress OpenMP deprecation warnings that occur with Numba parallel processing
os.environ.setdefault('KMP_WARNINGS', 'off')

warnings.filterwarnings('ignore', message='.*omp_set_nested.*deprecated.*')
warnings.filterwarnings('ignore', category=UserWarning, message='.*omp_set_nested.*')

__version__ = "0.1.0"
__author__ = "dcVar Development Team"

from .utils.config import DcVarConfig
from .utils.checkpoint import CheckpointManager
from .matrix.case_control import map_genotypes_to_model, split_expression_case_control
from .association.dcvar_z import DCVAR_ZTest
from .association.correction import DCVAR_Prune, get_correction
from .pipelines.dcvar import DcVarPipeline

__all__ = [
    'DcVarConfig',
    'CheckpointManager',
    'map_genotypes_to_model',
    'split_expression_case_control',
    'DCVAR_ZTest',
    'DCVAR_Prune',
    'get_correction',
    'DcVarPipeline',
]
