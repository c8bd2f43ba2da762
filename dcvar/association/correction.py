"""
Multiple testing correction of the per-variant Z/P pair matrices.

Three strategies, chosen once per run:

- ``fdr``: Benjamini-Hochberg with a rough-FDR alpha, where the number of
  tests m is the count of stored p-values times the number of variants in the
  batch (the whole batch is one family of tests).
- ``bon``: Bonferroni, alpha / (gene pair combinations × variants).
- ``custom``: a fixed absolute p-value threshold.

Every strategy removes pruned pairs from both the Z and the P matrix.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..utils.config import CORRECTION_TYPES
from ..utils.data_types import PairMatrices
from ..utils.stats import (
    bonferroni_threshold, rough_fdr_alpha, bh_rejection_index, n_gene_combinations
)


@dataclass
class PruneReport:
    """Outcome of one correction pass."""

    correction: str
    threshold: float
    n_before: int
    n_pruned: int

    @property
    def n_remaining(self) -> int:
        return self.n_before - self.n_pruned


def _prune_above(matrices: PairMatrices, threshold: float) -> int:
    rows, cols, pvals = matrices.flatten_pvalues()
    n_pruned = 0
    for i, j in zip(rows[pvals > threshold].tolist(), cols[pvals > threshold].tolist()):
        if matrices.prune_pair(i, j):
            n_pruned += 1
    return n_pruned


class FdrBHCorrection:
    """Benjamini-Hochberg FDR with batch-wide test count scaling"""

    name = 'fdr'

    def __init__(self, fdr: float = 0.05):
        self.fdr = float(fdr)

    def rejection_threshold(self, matrices: PairMatrices, n_variants: int) -> Optional[float]:
        """BH rejection threshold T, or None when no p-value qualifies."""
        _, _, pvals = matrices.flatten_pvalues()
        if pvals.size == 0:
            return None
        sorted_p = np.sort(pvals, kind='mergesort')
        m = float(pvals.size) * float(n_variants)
        alpha = rough_fdr_alpha(m, self.fdr)
        r_index = bh_rejection_index(sorted_p, alpha, m)
        if r_index < 0:
            return None
        return float(sorted_p[r_index])

    def prune(self, matrices: PairMatrices, n_variants: int, n_genes: int) -> PruneReport:
        n_before = matrices.nnz
        threshold = self.rejection_threshold(matrices, n_variants)
        if threshold is None:
            # No p-value meets the BH criterion: nothing survives
            rows, cols, _ = matrices.flatten_pvalues()
            for i, j in zip(rows.tolist(), cols.tolist()):
                matrices.prune_pair(i, j)
            return PruneReport(self.name, float('nan'), n_before, n_before)
        n_pruned = _prune_above(matrices, threshold)
        return PruneReport(self.name, threshold, n_before, n_pruned)


class BonferroniCorrection:
    """Bonferroni over every gene pair of every variant in the batch"""

    name = 'bon'

    def __init__(self, alpha: float = 0.05):
        self.alpha = float(alpha)

    def corrected_threshold(self, n_genes: int, n_variants: int) -> float:
        return bonferroni_threshold(self.alpha, n_gene_combinations(n_genes), n_variants)

    def prune(self, matrices: PairMatrices, n_variants: int, n_genes: int) -> PruneReport:
        n_before = matrices.nnz
        threshold = self.corrected_threshold(n_genes, n_variants)
        n_pruned = _prune_above(matrices, threshold)
        return PruneReport(self.name, threshold, n_before, n_pruned)


class CustomCorrection:
    """Fixed absolute p-value threshold"""

    name = 'custom'

    def __init__(self, threshold: float = 0.05):
        self.threshold = float(threshold)

    def prune(self, matrices: PairMatrices, n_variants: int, n_genes: int) -> PruneReport:
        n_before = matrices.nnz
        n_pruned = _prune_above(matrices, self.threshold)
        return PruneReport(self.name, self.threshold, n_before, n_pruned)


_CORRECTIONS = {
    'fdr': FdrBHCorrection,
    'bon': BonferroniCorrection,
    'custom': CustomCorrection,
}


def get_correction(name: str, value: float = 0.05):
    """Instantiate the correction strategy for ``name``.

    Raises:
        ValueError: If ``name`` is not one of 'fdr', 'bon', 'custom'
    """
    key = str(name).strip().lower()
    if key not in _CORRECTIONS:
        raise ValueError(
            f"Unknown p-value filter type. Expects \"bon\" or \"fdr\" or \"custom\". Got [ {name} ]"
        )
    return _CORRECTIONS[key](value)


def DCVAR_Prune(matrices: PairMatrices,
                correction,
                n_variants: int,
                n_genes: Optional[int] = None,
                verbose: bool = False,
                log: Callable[[str], None] = print) -> PruneReport:
    """Apply a multiple testing correction to the pair matrices in place.

    Args:
        matrices: Sparse Z/P pair matrices for one variant
        correction: Strategy object or a name from CORRECTION_TYPES
        n_variants: Number of variants in the whole batch
        n_genes: Number of genes (defaults to the matrix dimension)
        verbose: Report the pruning summary
        log: Sink for the verbose report

    Returns:
        PruneReport with the threshold used and the number of pruned pairs
    """
    if isinstance(correction, str):
        if correction not in CORRECTION_TYPES:
            raise ValueError(
                f"Unknown p-value filter type. Expects \"bon\" or \"fdr\" or \"custom\". Got [ {correction} ]"
            )
        correction = get_correction(correction)
    if n_genes is None:
        n_genes = matrices.n_genes

    report = correction.prune(matrices, n_variants=n_variants, n_genes=n_genes)

    if verbose:
        log(f"\tFiltering p-values using [ {report.correction} ] correction")
        log(f"\t[ {report.n_before} ] p-values before pruning")
        if np.isnan(report.threshold):
            log("\tWARNING: No p-value meets BH threshold criteria, so all pruned")
        else:
            log(f"\tThreshold [ {report.threshold:.6g} ]")
        log(f"\t[ {report.n_pruned} ] p-values pruned")
        log(f"\t[ {report.n_remaining} ] p-values after pruning")
    return report
