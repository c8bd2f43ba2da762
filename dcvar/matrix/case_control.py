"""
Genotype-derived case/control phenotypes and the matching expression subsets.

A variant's genotype codes (0 = homozygous reference, 1 = heterozygous,
2 = homozygous alternate) are mapped to a binary phenotype by a genetic model:

    dom  case if genotype == 2, otherwise control
    rec  case if genotype == 0, otherwise control
    hom  case if genotype == 1; genotypes 0 and 2 are undetermined

Missing calls (-9 or NaN) are controls under dom and rec, and undetermined
under hom. Undetermined subjects take part in neither group.
"""

import numpy as np
from typing import Tuple, Union

from ..utils.config import GENETIC_MODELS, MIN_NUM_GENES, MIN_NUM_SUBJ_PER_GROUP
from ..utils.data_types import (
    CaseControlLabels, ExpressionMatrix, MISSING,
    CASE_LABEL, CTRL_LABEL, UNDETERMINED_LABEL,
)


def map_genotypes_to_model(genotypes: np.ndarray, model: str = 'dom') -> CaseControlLabels:
    """Build case/control index lists for one variant.

    Args:
        genotypes: Genotype codes for every subject
        model: Genetic model ('dom', 'rec' or 'hom')

    Returns:
        CaseControlLabels with disjoint index arrays in subject order

    Raises:
        ValueError: Unknown model or a genotype code outside {0, 1, 2, missing}
    """
    if model not in GENETIC_MODELS:
        raise ValueError(f"Unknown genetic model '{model}'. Expects one of {', '.join(GENETIC_MODELS)}")

    geno = np.asarray(genotypes, dtype=np.float64).ravel()
    missing = np.isnan(geno) | (geno == MISSING)
    valid = (geno == 0) | (geno == 1) | (geno == 2)
    invalid = ~(valid | missing)
    if invalid.any():
        bad = np.unique(geno[invalid])
        raise ValueError(f"Invalid genotype codes {bad.tolist()}; expected 0, 1, 2 or {MISSING} for missing")

    if model == 'dom':
        labels = np.where(geno == 2, CASE_LABEL, CTRL_LABEL).astype(np.int8)
    elif model == 'rec':
        labels = np.where(geno == 0, CASE_LABEL, CTRL_LABEL).astype(np.int8)
    else:
        labels = np.full(geno.shape, UNDETERMINED_LABEL, dtype=np.int8)
        labels[geno == 1] = CASE_LABEL

    return CaseControlLabels(
        case_indices=np.flatnonzero(labels == CASE_LABEL),
        ctrl_indices=np.flatnonzero(labels == CTRL_LABEL),
        undetermined_indices=np.flatnonzero(labels == UNDETERMINED_LABEL),
        labels=labels,
        model=model,
    )


def has_minimum_group_sizes(labels: CaseControlLabels,
                            min_group_size: int = MIN_NUM_SUBJ_PER_GROUP) -> bool:
    """True when both groups reach ``min_group_size`` subjects"""
    return labels.n_cases >= min_group_size and labels.n_ctrls >= min_group_size


def split_expression_case_control(expression: Union[ExpressionMatrix, np.ndarray],
                                  labels: CaseControlLabels,
                                  min_genes: int = MIN_NUM_GENES) -> Tuple[np.ndarray, np.ndarray]:
    """Gather case and control subjects from a genes × subjects matrix.

    Args:
        expression: Expression matrix (genes × subjects)
        labels: Case/control partition for the current variant
        min_genes: Minimum number of genes required

    Returns:
        Tuple of (case_matrix, ctrl_matrix), each subjects × genes, with rows
        in the order of ``labels.case_indices`` / ``labels.ctrl_indices``
    """
    expr = expression.to_numpy() if isinstance(expression, ExpressionMatrix) else np.asarray(expression)
    if expr.ndim != 2:
        raise ValueError("Expression matrix must be 2D (genes × subjects)")
    n_genes, n_subjects = expr.shape
    if n_genes < min_genes:
        raise ValueError(f"Gene expression data must include at least [ {min_genes} ] genes, got {n_genes}")
    if labels.labels.size != n_subjects:
        raise ValueError(
            f"Genotype subjects ({labels.labels.size}) != expression subjects ({n_subjects})"
        )

    case_matrix = np.ascontiguousarray(expr[:, labels.case_indices].T, dtype=np.float64)
    ctrl_matrix = np.ascontiguousarray(expr[:, labels.ctrl_indices].T, dtype=np.float64)
    return case_matrix, ctrl_matrix
