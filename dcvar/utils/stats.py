"""
Statistical utilities for differential correlation analysis
"""

import numpy as np
from typing import Tuple
from scipy import special


def n_gene_combinations(n_genes: int) -> float:
    """Number of unordered gene pairs, G * (G - 1) / 2, as a float"""
    n = float(n_genes)
    return n * (n - 1.0) / 2.0


def fisher_z(r):
    """Fisher Z transform 0.5 * ln(|(1 + r) / (1 - r)|)

    The absolute value keeps the log argument positive when rounding pushes
    |r| slightly above 1. r = +/-1 maps to +/-inf.
    """
    r = np.asarray(r, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        return 0.5 * np.log(np.abs((1.0 + r) / (1.0 - r)))


def differential_correlation_z(r1, r2, n1: int, n2: int):
    """Two-sample Z statistic for a difference of correlations

    Z = |z1 - z2| / sqrt(1/(n1 - 3) + 1/(n2 - 3)). Groups of 3 or fewer
    subjects give an infinite statistic.
    """
    z1 = fisher_z(r1)
    z2 = fisher_z(r2)
    if n1 <= 3 or n2 <= 3:
        return np.full(np.broadcast(z1, z2).shape, np.inf)
    se = np.sqrt(1.0 / (n1 - 3.0) + 1.0 / (n2 - 3.0))
    with np.errstate(invalid='ignore'):
        return np.abs(z1 - z2) / se


def two_sided_pvalue(z):
    """Two-sided normal tail probability 2 * Phi(-|Z|)"""
    z = np.asarray(z, dtype=np.float64)
    return 2.0 * special.ndtr(-np.abs(z))


def bonferroni_threshold(alpha: float, n_combinations: float, n_variants: int) -> float:
    """Corrected p-value alpha / (combinations × variants)

    Args:
        alpha: Family-wise error rate
        n_combinations: Number of gene pairs tested per variant
        n_variants: Number of variants in the batch

    Returns:
        Corrected per-test threshold
    """
    denom = float(n_combinations) * float(n_variants)
    if denom <= 0:
        raise ValueError("Bonferroni correction needs at least one test")
    return alpha / denom


def rough_fdr_alpha(m: float, fdr: float) -> float:
    """Rough FDR estimate of alpha: 2 * m * FDR / (m + 1)"""
    return 2.0 * m * fdr / (m + 1.0)


def bh_rejection_index(sorted_pvalues: np.ndarray, alpha: float, m: float) -> int:
    """Benjamini-Hochberg step-up index with first-violation stopping.

    Scans ascending p-values and keeps the last index R for which
    p[R] < (R + 1) * alpha / m, stopping at the first index that fails.

    Args:
        sorted_pvalues: p-values sorted ascending
        alpha: Significance level (after any rough-FDR adjustment)
        m: Number of tests used in the denominator

    Returns:
        R (0-based), or -1 when the smallest p-value already fails
    """
    sorted_pvalues = np.asarray(sorted_pvalues, dtype=np.float64)
    n = sorted_pvalues.size
    if n == 0 or m <= 0:
        return -1
    limits = np.arange(1, n + 1, dtype=np.float64) * alpha / float(m)
    fails = ~(sorted_pvalues < limits)
    if not fails.any():
        return n - 1
    return int(np.argmax(fails)) - 1


def pearson_columns(x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Standardize columns so that x_std[:, i] @ x_std[:, j] is Pearson r.

    Zero-variance columns become NaN, which propagates to a NaN correlation.

    Returns:
        Tuple of (standardized matrix, boolean mask of zero-variance columns)
    """
    x = np.asarray(x, dtype=np.float64)
    centered = x - x.mean(axis=0, keepdims=True)
    norms = np.sqrt((centered * centered).sum(axis=0))
    constant = ~(norms > 0)
    with np.errstate(divide='ignore', invalid='ignore'):
        scaled = centered / np.where(constant, np.nan, norms)
    return np.ascontiguousarray(scaled), constant
