"""
Differential correlation Z tests over all gene pairs.

For each gene pair (i, j), Pearson correlations are computed separately in
cases (r1) and controls (r2), Fisher transformed, and compared with

    Z = |z1 - z2| / sqrt(1 / (n1 - 3) + 1 / (n2 - 3)),   p = 2 * Phi(-|Z|)

Pairs with p <= threshold are stored in a sparse PairMatrices. Non-finite Z
values (perfect correlation, zero-variance genes, groups of 3 or fewer) are
counted but never stored.

Rows of the pair triangle are distributed over a joblib thread pool; the
per-row kernel is Numba-compiled with ``nogil`` so threads run concurrently.
"""

import multiprocessing
import numpy as np
import numba
from joblib import Parallel, delayed
from typing import Callable, Optional

from ..utils.config import DEFAULT_PVALUE_THRESHOLD
from ..utils.data_types import PairMatrices, ZTestContext
from ..utils.stats import pearson_columns, two_sided_pvalue, n_gene_combinations

# |r| closer than this to 1 is treated as a perfect correlation (infinite z)
PERFECT_CORRELATION_TOL = 1e-12


@numba.jit(nopython=True, nogil=True, cache=True, error_model='numpy')
def _row_differential_z(case_std, ctrl_std, i, n1, n2):
    """Z statistics for pairs (i, i+1), ..., (i, G-1) from standardized columns."""
    n_genes = case_std.shape[1]
    n_out = n_genes - i - 1
    out = np.empty(n_out)
    if n1 <= 3.0 or n2 <= 3.0:
        for k in range(n_out):
            out[k] = np.inf
        return out

    se = np.sqrt(1.0 / (n1 - 3.0) + 1.0 / (n2 - 3.0))
    n_case = case_std.shape[0]
    n_ctrl = ctrl_std.shape[0]
    for k in range(n_out):
        j = i + 1 + k
        r1 = 0.0
        for s in range(n_case):
            r1 += case_std[s, i] * case_std[s, j]
        r2 = 0.0
        for s in range(n_ctrl):
            r2 += ctrl_std[s, i] * ctrl_std[s, j]
        if abs(r1) > 1.0 - PERFECT_CORRELATION_TOL:
            r1 = 1.0 if r1 > 0 else -1.0
        if abs(r2) > 1.0 - PERFECT_CORRELATION_TOL:
            r2 = 1.0 if r2 > 0 else -1.0
        z1 = 0.5 * np.log(np.abs((1.0 + r1) / (1.0 - r1)))
        z2 = 0.5 * np.log(np.abs((1.0 + r2) / (1.0 - r2)))
        out[k] = np.abs(z1 - z2) / se
    return out


class ZTestResults:
    """Differential correlation results for one variant"""

    def __init__(self, context: ZTestContext, n_cases: int, n_ctrls: int):
        self.matrices: PairMatrices = context.matrices
        self.p_threshold = context.p_threshold
        self.n_cases = n_cases
        self.n_ctrls = n_ctrls
        self.n_infinite = context.n_infinite
        self.n_failed = context.n_failed
        self.n_passed = context.n_passed
        has_pass = context.n_passed > 0
        self.min_p = context.min_p if has_pass else float('nan')
        self.max_p = context.max_p if has_pass else float('nan')

    @property
    def n_genes(self) -> int:
        return self.matrices.n_genes

    @property
    def n_tests(self) -> int:
        return self.n_infinite + self.n_failed + self.n_passed


def resolve_n_jobs(cpu: int) -> int:
    if cpu == 0:
        return multiprocessing.cpu_count()
    return max(int(cpu), 1)


def DCVAR_ZTest(cases: np.ndarray,
                ctrls: np.ndarray,
                p_threshold: float = DEFAULT_PVALUE_THRESHOLD,
                cpu: int = 1,
                parallel: Optional[Parallel] = None,
                verbose: bool = False,
                log: Callable[[str], None] = print) -> ZTestResults:
    """Differential correlation Z tests for every gene pair.

    Args:
        cases: Case expression matrix (n_cases × n_genes)
        ctrls: Control expression matrix (n_ctrls × n_genes)
        p_threshold: First-pass filter; pairs with p above it are discarded
        cpu: Number of worker threads (0 = all cores); ignored when
            ``parallel`` is given
        parallel: An already entered ``joblib.Parallel`` to reuse across calls
        verbose: Report counters after the pass
        log: Sink for the verbose report (the pipeline passes its logger)

    Returns:
        ZTestResults holding the sparse Z/P matrices and pass/fail counters
    """
    cases = np.asarray(cases, dtype=np.float64)
    ctrls = np.asarray(ctrls, dtype=np.float64)
    if cases.ndim != 2 or ctrls.ndim != 2:
        raise ValueError("Case and control matrices must be 2D (subjects × genes)")
    if cases.shape[1] != ctrls.shape[1]:
        raise ValueError(
            f"Case genes ({cases.shape[1]}) != control genes ({ctrls.shape[1]})"
        )

    n1, n_genes = cases.shape
    n2 = ctrls.shape[0]
    case_std, _ = pearson_columns(cases)
    ctrl_std, _ = pearson_columns(ctrls)

    context = ZTestContext(matrices=PairMatrices(n_genes), p_threshold=float(p_threshold))

    def _process_row(i: int) -> None:
        z_row = _row_differential_z(case_std, ctrl_std, i, float(n1), float(n2))
        p_row = two_sided_pvalue(z_row)
        context.record_row(i, z_row, p_row)

    rows = range(max(n_genes - 1, 0))
    if parallel is not None:
        parallel(delayed(_process_row)(i) for i in rows)
    else:
        n_jobs = resolve_n_jobs(cpu)
        if n_jobs > 1 and n_genes > 2:
            Parallel(n_jobs=n_jobs, backend='threading')(
                delayed(_process_row)(i) for i in rows
            )
        else:
            for i in rows:
                _process_row(i)

    results = ZTestResults(context, n_cases=n1, n_ctrls=n2)

    if verbose:
        log(f"\tFirst pass filter threshold [ {p_threshold} ]")
        log(f"\tminp [ {results.min_p} ] maxp [ {results.max_p} ]")
        log(f"\t[ {results.n_infinite} ] infinite Z values, no p-values")
        log(f"\t[ {results.n_failed} ] p-values failed threshold test")
        log(f"\t[ {results.n_passed} ] p-values passed threshold test")
        log(f"\t[ {results.n_tests} ] total tests of {n_gene_combinations(n_genes):.0f} combinations")

    return results
