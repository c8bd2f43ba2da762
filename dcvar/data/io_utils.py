"""
File I/O utilities for dcVar results
"""

import warnings
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Union, Optional, Sequence, List
import h5py

from ..utils.data_types import PairMatrices, ExpressionMatrix, VariantResult

RESULTS_HEADER = ['Gene1', 'Gene2', 'Z', 'P']


def results_filename(output_prefix: Union[str, Path], correction: Optional[str], variant_name: str) -> str:
    """Per-variant results file: ``{prefix}.{correction}.{variant}.pass.tab``"""
    label = correction if correction else 'none'
    return f"{output_prefix}.{label}.{variant_name}.pass.tab"


def write_variant_results(file_path: Union[str, Path],
                          matrices: PairMatrices,
                          gene_names: Sequence[str]) -> bool:
    """Write the surviving gene pairs of one variant

    Output is tab-delimited with header ``Gene1 Gene2 Z P`` and one row per
    stored pair in row-major order.

    Returns:
        False (with a warning, no file) when there is nothing to write

    Raises:
        OSError: If the file cannot be opened for writing
    """
    if matrices.nnz == 0:
        warnings.warn(f"Attempt to write empty z-values sparse matrix to {file_path}; nothing written")
        return False
    if len(gene_names) != matrices.n_genes:
        raise ValueError(
            f"Gene name count ({len(gene_names)}) != matrix dimension ({matrices.n_genes})"
        )

    rows = [
        (gene_names[i], gene_names[j], z, p) for i, j, z, p in matrices.items()
    ]
    df = pd.DataFrame(rows, columns=RESULTS_HEADER)
    df.to_csv(file_path, sep='\t', index=False)
    return True


def load_variant_results(file_path: Union[str, Path]) -> pd.DataFrame:
    """Load a per-variant results file"""
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Results file not found: {file_path}")

    return pd.read_csv(file_path, sep='\t', dtype={'Gene1': str, 'Gene2': str})


def write_summary(results: List[VariantResult],
                  file_path: Union[str, Path],
                  variant_map: Optional[pd.DataFrame] = None,
                  chipseq: Optional[pd.DataFrame] = None,
                  merge_existing: bool = False) -> pd.DataFrame:
    """Write one summary row per processed variant

    Location columns from ``variant_map`` and ChIP-seq reads from ``chipseq``
    are joined on SNP when given. With ``merge_existing`` the rows of an
    existing summary file are kept unless the same variant index was
    processed again, and the result is ordered by index.
    """
    summary_df = pd.DataFrame([r.to_row() for r in results])
    if summary_df.empty:
        summary_df = pd.DataFrame(columns=list(VariantResult(0, '', '').to_row().keys()))

    if variant_map is not None:
        loc_cols = [c for c in ('SNP', 'CHROM', 'POS') if c in variant_map.columns]
        if len(loc_cols) > 1:
            summary_df = summary_df.merge(
                variant_map[loc_cols].drop_duplicates('SNP'), on='SNP', how='left'
            )
    if chipseq is not None and not chipseq.empty:
        summary_df = summary_df.merge(
            chipseq[['SNP', 'ChIPSeqReads']].drop_duplicates('SNP'), on='SNP', how='left'
        )

    file_path = Path(file_path)
    if merge_existing and file_path.exists():
        previous = pd.read_csv(file_path)
        previous = previous[~previous['Index'].isin(summary_df['Index'])]
        if summary_df.empty:
            summary_df = previous
        elif not previous.empty:
            summary_df = pd.concat([previous, summary_df], ignore_index=True)
        summary_df = summary_df.sort_values('Index', kind='stable').reset_index(drop=True)

    summary_df.to_csv(file_path, index=False)
    return summary_df


def write_expression_hdf5(expression: ExpressionMatrix,
                          file_path: Union[str, Path],
                          compression: str = 'gzip') -> str:
    """Save an expression matrix to HDF5 for faster reloading

    Datasets: ``expression`` (genes × subjects float64), ``genes``, ``subjects``.
    """
    file_path = str(file_path)
    str_dtype = h5py.string_dtype(encoding='utf-8')
    with h5py.File(file_path, 'w') as f:
        f.create_dataset('expression', data=expression.to_numpy().astype(np.float64),
                         compression=compression, chunks=True)
        f.create_dataset('genes', data=np.array(expression.gene_names, dtype=object), dtype=str_dtype)
        f.create_dataset('subjects', data=np.array(expression.subject_ids, dtype=object), dtype=str_dtype)
    return file_path


def validate_input_files(genotype_file: Optional[str] = None,
                         expression_file: Optional[str] = None,
                         snp_locations_file: Optional[str] = None,
                         chipseq_file: Optional[str] = None) -> dict:
    """Validate input files exist

    Returns dictionary with validation results
    """
    results = {'valid': True, 'errors': []}

    checks = (
        ('Genotype', genotype_file),
        ('Gene expression', expression_file),
        ('SNP locations', snp_locations_file),
        ('ChIP-seq', chipseq_file),
    )
    for label, path in checks:
        if not path:
            continue
        p = Path(path)
        if label == 'Genotype' and p.suffix == '' and p.with_suffix('.bed').exists():
            continue
        if not p.exists():
            results['valid'] = False
            results['errors'].append(f"{label} file not found: {path}")

    return results
