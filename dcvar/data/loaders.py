"""
Data loading utilities for genotype, expression, SNP location and ChIP-seq files
"""

import gzip
import io
import warnings
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Union, Tuple, Optional, List, Sequence
import h5py

from ..utils.data_types import GenotypeMatrix, VariantMap, ExpressionMatrix, MISSING
from .load_genotype_plink import load_genotype_plink as _load_genotype_plink

# ChIP-seq histone modification site records (0-based columns)
CHIP_SEQ_CHROM = 0
CHIP_SEQ_POS = 1
CHIP_SEQ_EXPR = 11
CHIP_SEQ_SNP = 15

SNP_LOCATION_COLUMNS = 5


def _open_text(path):
    """Open text transparently from plain or gzip-compressed files."""
    p = str(path)
    pl = p.lower()
    if pl.endswith('.gz') or pl.endswith('.bgz'):
        return io.TextIOWrapper(gzip.open(p, 'rb'))
    return open(p, 'r')


def _check_exists(filepath: Path, label: str) -> None:
    if not filepath.exists():
        raise FileNotFoundError(f"{label} file not found: {filepath}")


def detect_file_format(filepath: Union[str, Path]) -> str:
    """Detect file format based on extension and content

    Returns:
        Detected format: 'tsv', 'csv', 'plink', 'hdf5' or 'unknown'
    """
    filepath = Path(filepath)
    name_lower = filepath.name.lower()
    if name_lower.endswith('.gz'):
        name_lower = name_lower[:-3]

    if filepath.suffix.lower() in ['.bed', '.bim', '.fam']:
        return 'plink'
    if name_lower.endswith('.h5') or name_lower.endswith('.hdf5'):
        return 'hdf5'
    if name_lower.endswith('.csv'):
        return 'csv'
    if name_lower.endswith('.tsv') or name_lower.endswith('.tab') or name_lower.endswith('.txt'):
        return 'tsv'

    try:
        if filepath.suffix == '':
            pref = filepath
            if pref.with_suffix('.bed').exists() and pref.with_suffix('.bim').exists() and pref.with_suffix('.fam').exists():
                return 'plink'
        with _open_text(filepath) as f:
            first_line = f.readline().strip()
        if '\t' in first_line:
            return 'tsv'
        elif ',' in first_line:
            return 'csv'
        return 'tsv'
    except (OSError, UnicodeDecodeError):
        return 'unknown'


def _header_fields(filepath: Path, sep: str) -> List[str]:
    """Raw header fields, before pandas renames duplicated column names."""
    with _open_text(filepath) as fh:
        return [field.strip() for field in fh.readline().rstrip('\r\n').split(sep)]


def _read_delimited_matrix(filepath: Path, sep: str, label: str) -> pd.DataFrame:
    """Read a named-rows × named-columns matrix, skipping rows without values."""
    df = pd.read_csv(filepath, sep=sep, header=0, index_col=0, compression='infer')
    df.index = df.index.astype(str)
    df.columns = [str(c) for c in df.columns]

    empty_rows = df.isna().all(axis=1)
    if empty_rows.any():
        warnings.warn(
            f"Skipping {int(empty_rows.sum())} rows with no values in {label} file {filepath}"
        )
        df = df.loc[~empty_rows.to_numpy()]
    return df


def load_genotype_file(filepath: Union[str, Path],
                       file_format: Optional[str] = None,
                       **kwargs) -> Tuple[GenotypeMatrix, List[str], VariantMap]:
    """Load variant genotypes

    Delimited layout: header ``ID<TAB>subject1<TAB>...``, then one row per
    variant ``name<TAB>code...``. Codes are 0/1/2; empty or NA cells are
    missing (-9). Gzipped files are read transparently.

    Args:
        filepath: Path to genotype file (or PLINK prefix)
        file_format: 'tsv', 'csv', 'plink' or None to auto-detect

    Returns:
        Tuple of (GenotypeMatrix variants × subjects, subject_ids, VariantMap)
    """
    filepath = Path(filepath)
    if file_format is None:
        file_format = detect_file_format(filepath)

    if file_format == 'plink':
        geno_np, subject_ids, map_df = _load_genotype_plink(filepath, **kwargs)
        return GenotypeMatrix(geno_np), subject_ids, VariantMap(map_df)

    _check_exists(filepath, "Genotype")
    sep = ',' if file_format == 'csv' else '\t'
    df = _read_delimited_matrix(filepath, sep, "genotype")

    values = df.apply(pd.to_numeric, errors='coerce').to_numpy(dtype=np.float64, copy=True)
    raw_missing = df.isna().to_numpy()
    unparsable = np.isnan(values) & ~raw_missing
    if unparsable.any():
        raise ValueError(f"Non-numeric genotype values found in {filepath}")
    missing = np.isnan(values)
    observed = values[~missing]
    if observed.size and (np.any(observed != np.rint(observed)) or np.any(np.abs(observed) > 127)):
        raise ValueError(f"Genotype codes must be small integers (0/1/2, {MISSING} missing) in {filepath}")
    values[missing] = MISSING
    geno_np = values.astype(np.int8)

    subject_ids = list(df.columns)
    header_ids = _header_fields(filepath, sep)[1:]
    if len(set(header_ids)) != len(header_ids):
        warnings.warn(f"Duplicated subject IDs in genotype file {filepath}")
    variant_names = list(df.index)
    if len(set(variant_names)) != len(variant_names):
        warnings.warn(f"Duplicated variant names in genotype file {filepath}")

    return GenotypeMatrix(geno_np), subject_ids, VariantMap(variant_names)


def load_expression_file(filepath: Union[str, Path],
                         file_format: Optional[str] = None) -> ExpressionMatrix:
    """Load a gene expression matrix (genes × subjects)

    Delimited layout: header ``gene<TAB>subject1<TAB>...``, then one row per
    gene. HDF5 files hold datasets ``expression``, ``genes`` and ``subjects``.
    """
    filepath = Path(filepath)
    _check_exists(filepath, "Gene expression")
    if file_format is None:
        file_format = detect_file_format(filepath)

    if file_format == 'hdf5':
        with h5py.File(filepath, 'r') as f:
            for key in ('expression', 'genes', 'subjects'):
                if key not in f:
                    raise ValueError(f"HDF5 expression file {filepath} is missing dataset '{key}'")
            data = f['expression'][:]
            genes = [g.decode() if isinstance(g, bytes) else str(g) for g in f['genes'][:]]
            subjects = [s.decode() if isinstance(s, bytes) else str(s) for s in f['subjects'][:]]
        return ExpressionMatrix(data, genes, subjects)

    sep = ',' if file_format == 'csv' else '\t'
    df = _read_delimited_matrix(filepath, sep, "gene expression")
    try:
        values = df.to_numpy(dtype=np.float64, copy=True)
    except ValueError as e:
        raise ValueError(f"Non-numeric expression values in {filepath}: {e}") from None
    if np.isnan(values).any():
        warnings.warn(
            f"Gene expression file {filepath} contains missing values; affected gene pairs will not be tested"
        )
    return ExpressionMatrix(values, list(df.index), list(df.columns))


def load_snp_locations_file(filepath: Union[str, Path]) -> pd.DataFrame:
    """Load SNP locations: header line, then ``SNP CHROM POS <unused> REF``

    Lines without exactly five fields are skipped with a warning.
    """
    filepath = Path(filepath)
    _check_exists(filepath, "SNP locations")
    rows = []
    n_bad = 0
    with _open_text(filepath) as fh:
        fh.readline()
        for line in fh:
            parts = line.rstrip('\n').split()
            if len(parts) != SNP_LOCATION_COLUMNS:
                n_bad += 1
                continue
            rows.append({
                'SNP': parts[0],
                'CHROM': parts[1],
                'POS': int(parts[2]),
                'REF': parts[4][0],
            })
    if n_bad:
        warnings.warn(
            f"Skipped {n_bad} lines in {filepath} that do not have {SNP_LOCATION_COLUMNS} columns"
        )
    return pd.DataFrame(rows, columns=['SNP', 'CHROM', 'POS', 'REF'])


def load_chipseq_file(filepath: Union[str, Path]) -> pd.DataFrame:
    """Load ChIP-seq histone modification site reads keyed by SNP

    Expects a header line and 16 tab-separated columns per record. The SNP
    field looks like ``rs28469609:38367404:C:T``; the part before the first
    colon is the key.
    """
    filepath = Path(filepath)
    _check_exists(filepath, "ChIP-seq")
    rows = {}
    n_bad = 0
    with _open_text(filepath) as fh:
        fh.readline()
        for line in fh:
            parts = line.rstrip('\n').split('\t')
            if len(parts) != CHIP_SEQ_SNP + 1:
                n_bad += 1
                continue
            snp = parts[CHIP_SEQ_SNP].split(':')[0]
            rows[snp] = {
                'SNP': snp,
                'CHROM': parts[CHIP_SEQ_CHROM],
                'POS': int(parts[CHIP_SEQ_POS]),
                'ChIPSeqReads': float(parts[CHIP_SEQ_EXPR]),
            }
    if n_bad:
        warnings.warn(
            f"Skipped {n_bad} lines in {filepath} that do not have {CHIP_SEQ_SNP + 1} columns"
        )
    return pd.DataFrame(list(rows.values()), columns=['SNP', 'CHROM', 'POS', 'ChIPSeqReads'])


def check_subject_alignment(genotype_subjects: Sequence[str],
                            expression_subjects: Sequence[str]) -> None:
    """Check genotype and expression subject lists index the same subjects.

    Subjects are matched by position. A count mismatch is an error; differing
    identifiers only warn, since ordering is the caller's responsibility.
    """
    if len(genotype_subjects) != len(expression_subjects):
        raise ValueError(
            f"Genotype subjects ({len(genotype_subjects)}) != expression subjects ({len(expression_subjects)})"
        )
    mismatched = [
        (g, e) for g, e in zip(genotype_subjects, expression_subjects) if str(g) != str(e)
    ]
    if mismatched:
        g, e = mismatched[0]
        warnings.warn(
            f"{len(mismatched)} subject identifiers differ between genotype and expression data "
            f"(first: '{g}' vs '{e}'); subjects are matched by column position."
        )
