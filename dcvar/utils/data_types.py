"""
Core data structures for dcVar package
"""

import threading
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Optional, Union, Tuple, Dict, Any, List, Iterator, Sequence
from scipy import sparse

MISSING = -9

# Phenotype labels produced by the genetic model mapping
CASE_LABEL = 1
CTRL_LABEL = 0
UNDETERMINED_LABEL = -9


class GenotypeMatrix:
    """Genotype codes for every variant across every subject

    Orientation is variants × subjects. Codes are 0/1/2 copies of the
    alternate allele with -9 for missing calls.
    """

    def __init__(self, data: np.ndarray):
        if not isinstance(data, np.ndarray):
            raise ValueError("Genotype data must be a numpy array")
        if data.ndim != 2:
            raise ValueError(f"Genotype matrix must be 2D, got {data.ndim}D")
        self._data = data

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape (n_variants, n_subjects)"""
        return self._data.shape

    @property
    def n_variants(self) -> int:
        return self.shape[0]

    @property
    def n_subjects(self) -> int:
        return self.shape[1]

    def get_variant(self, variant_idx: int) -> np.ndarray:
        """Genotype codes of one variant for all subjects"""
        return self._data[variant_idx, :]

    def to_numpy(self) -> np.ndarray:
        return self._data


class VariantMap:
    """Variant names with optional location information

    Required column: SNP. CHROM, POS and REF are filled in when a SNP
    locations file is merged in.
    """

    def __init__(self, data: Union[pd.DataFrame, Sequence[str]], metadata: Optional[Dict[str, Any]] = None):
        if isinstance(data, pd.DataFrame):
            self.data = data.copy()
        else:
            self.data = pd.DataFrame({'SNP': [str(name) for name in data]})

        self.metadata: Dict[str, Any] = dict(metadata) if metadata else {}

        if 'SNP' not in self.data.columns:
            raise ValueError("Missing required column: SNP")
        self.data['SNP'] = self.data['SNP'].astype(str)

    @property
    def snp_ids(self) -> List[str]:
        return self.data['SNP'].tolist()

    @property
    def n_variants(self) -> int:
        return len(self.data)

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()

    def with_locations(self, locations: pd.DataFrame) -> "VariantMap":
        """Return a new map with CHROM/POS/REF merged from a locations table.

        Variants absent from ``locations`` keep missing location fields.
        """
        keep = [c for c in ('SNP', 'CHROM', 'POS', 'REF') if c in locations.columns]
        base = self.data[['SNP']].copy()
        merged = base.merge(
            locations[keep].drop_duplicates('SNP'), on='SNP', how='left'
        )
        return VariantMap(merged, metadata=self.metadata)


class ExpressionMatrix:
    """Gene expression values, genes × subjects"""

    def __init__(self, data: np.ndarray, gene_names: Sequence[str], subject_ids: Sequence[str]):
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2:
            raise ValueError(f"Expression matrix must be 2D, got {data.ndim}D")
        if data.shape[0] != len(gene_names):
            raise ValueError(
                f"Expression rows ({data.shape[0]}) != number of gene names ({len(gene_names)})"
            )
        if data.shape[1] != len(subject_ids):
            raise ValueError(
                f"Expression columns ({data.shape[1]}) != number of subjects ({len(subject_ids)})"
            )
        self._data = data
        self.gene_names: List[str] = [str(g) for g in gene_names]
        self.subject_ids: List[str] = [str(s) for s in subject_ids]

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape (n_genes, n_subjects)"""
        return self._data.shape

    @property
    def n_genes(self) -> int:
        return self.shape[0]

    @property
    def n_subjects(self) -> int:
        return self.shape[1]

    def to_numpy(self) -> np.ndarray:
        return self._data


@dataclass
class CaseControlLabels:
    """Partition of subject indices produced by a genetic model."""

    case_indices: np.ndarray
    ctrl_indices: np.ndarray
    undetermined_indices: np.ndarray
    labels: np.ndarray
    model: str

    @property
    def n_cases(self) -> int:
        return int(self.case_indices.size)

    @property
    def n_ctrls(self) -> int:
        return int(self.ctrl_indices.size)

    @property
    def n_undetermined(self) -> int:
        return int(self.undetermined_indices.size)


class PairMatrices:
    """Sparse symmetric Z and P matrices over gene pairs.

    Z and P share one key set, so dimensions and sparsity pattern always
    agree. Pairs are stored once under (min, max); lookups of (j, i) resolve
    to the same entry. Absent pairs read as 0.0.
    """

    def __init__(self, n_genes: int):
        if n_genes < 0:
            raise ValueError("n_genes must be non-negative")
        self.n_genes = int(n_genes)
        self._entries: Dict[Tuple[int, int], Tuple[float, float]] = {}

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.n_genes, self.n_genes)

    @property
    def nnz(self) -> int:
        """Number of stored gene pairs"""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return self._key(*key) in self._entries

    def _key(self, i: int, j: int) -> Tuple[int, int]:
        i = int(i)
        j = int(j)
        if i == j:
            raise ValueError(f"Diagonal pair ({i}, {j}) is not a gene interaction")
        if not (0 <= i < self.n_genes and 0 <= j < self.n_genes):
            raise IndexError(f"Pair ({i}, {j}) out of range for {self.n_genes} genes")
        return (i, j) if i < j else (j, i)

    def set_pair(self, i: int, j: int, z: float, p: float) -> None:
        """Store Z and P for the pair, visible from both (i, j) and (j, i)."""
        self._entries[self._key(i, j)] = (float(z), float(p))

    def set_pairs(self, i: int, js: np.ndarray, zs: np.ndarray, ps: np.ndarray) -> None:
        """Store a batch of pairs sharing the row gene ``i``."""
        if not (len(js) == len(zs) == len(ps)):
            raise ValueError("Pair arrays must have same length")
        for j, z, p in zip(js.tolist(), zs.tolist(), ps.tolist()):
            self._entries[self._key(i, j)] = (z, p)

    def prune_pair(self, i: int, j: int) -> bool:
        """Remove the pair from both matrices. Returns True if it was stored."""
        return self._entries.pop(self._key(i, j), None) is not None

    def get_z(self, i: int, j: int) -> float:
        return self._entries.get(self._key(i, j), (0.0, 0.0))[0]

    def get_p(self, i: int, j: int) -> float:
        return self._entries.get(self._key(i, j), (0.0, 0.0))[1]

    def items(self) -> Iterator[Tuple[int, int, float, float]]:
        """Yield (row, col, z, p) for stored pairs in row-major order."""
        for (i, j) in sorted(self._entries):
            z, p = self._entries[(i, j)]
            yield i, j, z, p

    def flatten_pvalues(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Stored p-values in row-major (i then j) order with their indices."""
        keys = sorted(self._entries)
        rows = np.array([k[0] for k in keys], dtype=np.int64)
        cols = np.array([k[1] for k in keys], dtype=np.int64)
        pvals = np.array([self._entries[k][1] for k in keys], dtype=np.float64)
        return rows, cols, pvals

    def copy(self) -> "PairMatrices":
        clone = PairMatrices(self.n_genes)
        clone._entries = dict(self._entries)
        return clone

    def to_sparse(self) -> Tuple[sparse.csr_matrix, sparse.csr_matrix]:
        """Export symmetric (Z, P) as scipy CSR matrices."""
        rows, cols, pvals = self.flatten_pvalues()
        zvals = np.array([self._entries[(i, j)][0] for i, j in zip(rows.tolist(), cols.tolist())],
                         dtype=np.float64)
        sym_rows = np.concatenate([rows, cols])
        sym_cols = np.concatenate([cols, rows])
        z_mat = sparse.coo_matrix((np.concatenate([zvals, zvals]), (sym_rows, sym_cols)),
                                  shape=self.shape).tocsr()
        p_mat = sparse.coo_matrix((np.concatenate([pvals, pvals]), (sym_rows, sym_cols)),
                                  shape=self.shape).tocsr()
        return z_mat, p_mat

    def to_dataframe(self, gene_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        rows = list(self.items())
        df = pd.DataFrame(rows, columns=['Row', 'Col', 'Z', 'P'])
        if gene_names is not None:
            df.insert(0, 'Gene1', [gene_names[i] for i in df['Row']])
            df.insert(1, 'Gene2', [gene_names[j] for j in df['Col']])
        return df


@dataclass
class ZTestContext:
    """Mutable state shared by the parallel Z-test loop.

    Every row update (matrix writes plus counters) happens under ``lock``.
    """

    matrices: PairMatrices
    p_threshold: float
    n_infinite: int = 0
    n_failed: int = 0
    n_passed: int = 0
    min_p: float = 1.0
    max_p: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_row(self, i: int, z_row: np.ndarray, p_row: np.ndarray) -> None:
        """Apply the results for pairs (i, i+1..G-1) atomically."""
        finite = np.isfinite(z_row) & np.isfinite(p_row)
        passed = finite & (p_row <= self.p_threshold)
        js = np.nonzero(passed)[0] + i + 1
        n_inf = int((~finite).sum())
        n_pass = int(passed.sum())
        n_fail = int(finite.sum()) - n_pass
        with self.lock:
            if n_pass:
                passed_p = p_row[passed]
                self.matrices.set_pairs(i, js, z_row[passed], passed_p)
                self.min_p = min(self.min_p, float(passed_p.min()))
                self.max_p = max(self.max_p, float(passed_p.max()))
            self.n_infinite += n_inf
            self.n_failed += n_fail
            self.n_passed += n_pass

    @property
    def n_tests(self) -> int:
        return self.n_infinite + self.n_failed + self.n_passed


@dataclass
class VariantResult:
    """Per-variant diagnostics for the run summary."""

    variant_index: int
    variant: str
    status: str
    n_cases: int = 0
    n_ctrls: int = 0
    n_undetermined: int = 0
    n_infinite: int = 0
    n_failed: int = 0
    n_passed: int = 0
    min_p: float = float('nan')
    max_p: float = float('nan')
    n_pruned: int = 0
    n_written: int = 0
    output_file: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'Index': self.variant_index,
            'SNP': self.variant,
            'Status': self.status,
            'Cases': self.n_cases,
            'Controls': self.n_ctrls,
            'Undetermined': self.n_undetermined,
            'Infinite_Z': self.n_infinite,
            'Failed_First_Pass': self.n_failed,
            'Passed_First_Pass': self.n_passed,
            'Min_P': self.min_p,
            'Max_P': self.max_p,
            'Pruned': self.n_pruned,
            'Written': self.n_written,
            'Output_File': self.output_file or '',
        }
