#!/usr/bin/env python
"""
PLINK .bed loader for dcVar: builds (genotype codes, subject_ids, variant map).

Dependencies:
    - bed-reader (pip install bed-reader)

Conventions:
    - Output orientation is variants × subjects
    - Genotypes coded 0/1/2 for copies of ALT allele; missing as -9 (int8)
    - .bim columns used to build map with columns ['SNP','CHROM','POS','REF','ALT']
      where REF = A2 and ALT = A1 from BIM (PLINK convention)
    - .fam provides subject IDs (IID by default)
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import numpy as np
import pandas as pd

MISSING = -9


def _resolve_plink_paths(prefix_or_bed: str | Path, bim: str | Path | None, fam: str | Path | None) -> Tuple[Path, Path, Path]:
    p = Path(prefix_or_bed)
    if p.suffix.lower() in ('.bed', '.bim', '.fam'):
        pref = p.with_suffix('')
        bed = pref.with_suffix('.bed')
    else:
        pref = p
        bed = pref.with_suffix('.bed')
    bim_path = Path(bim) if bim else pref.with_suffix('.bim')
    fam_path = Path(fam) if fam else pref.with_suffix('.fam')
    for fp, ext in ((bed, '.bed'), (bim_path, '.bim'), (fam_path, '.fam')):
        if not fp.exists():
            raise FileNotFoundError(f"Missing PLINK file: {fp} ({ext})")
    return bed, bim_path, fam_path


def _read_fam_ids(fam_path: Path) -> List[str]:
    ids: List[str] = []
    with fam_path.open('r') as fh:
        for line in fh:
            parts = line.rstrip('\n').split()
            if not parts:
                continue
            # FID IID ...; use IID (col 2)
            ids.append(parts[1] if len(parts) > 1 else parts[0])
    if not ids:
        raise ValueError('FAM file contained no individuals')
    return ids


def _read_bim_map(bim_path: Path) -> pd.DataFrame:
    rows = []
    with bim_path.open('r') as fh:
        for line in fh:
            parts = line.rstrip('\n').split()
            if len(parts) < 6:
                continue
            chrom, snp, _cm, pos, a1, a2 = parts[:6]
            rows.append({
                'SNP': snp,
                'CHROM': str(chrom),
                'POS': int(float(pos)),
                'REF': a2,
                'ALT': a1,
            })
    return pd.DataFrame(rows, columns=['SNP', 'CHROM', 'POS', 'REF', 'ALT'])


def recode_plink_dosages(X: np.ndarray) -> np.ndarray:
    """Convert a bed-reader (subjects × variants) array to int8 variants × subjects.

    NaN and any value other than 0/1/2 become -9.
    """
    if np.issubdtype(X.dtype, np.floating):
        missing_mask = np.isnan(X)
        Xi = np.rint(np.where(missing_mask, 0, X)).astype(np.int16)
        Xi[missing_mask] = MISSING
    else:
        Xi = X.astype(np.int16, copy=True)
    bad = (Xi != 0) & (Xi != 1) & (Xi != 2)
    Xi[bad] = MISSING
    return np.ascontiguousarray(Xi.T.astype(np.int8))


def load_genotype_plink(
    prefix_or_bed: str | Path,
    bim: str | Path | None = None,
    fam: str | Path | None = None,
):
    """
    Load PLINK 1 .bed genotype data.

    Parameters
    - prefix_or_bed: path to PLINK prefix or .bed file
    - bim, fam: optional explicit paths; by default inferred from prefix

    Returns (codes variants × subjects, subject_ids, map DataFrame)
    """
    bed_path, bim_path, fam_path = _resolve_plink_paths(prefix_or_bed, bim, fam)

    subject_ids = _read_fam_ids(fam_path)
    variant_map = _read_bim_map(bim_path)

    try:
        from bed_reader import open_bed  # type: ignore
    except ImportError as e:
        raise ImportError("bed-reader is required for PLINK .bed loading. pip install bed-reader") from e

    b = open_bed(str(bed_path))
    X = b.read()  # (n_subjects, n_variants)

    n_sub, n_var = X.shape
    if len(subject_ids) != n_sub:
        raise ValueError(f"Sample count mismatch: FAM {len(subject_ids)} vs BED {n_sub}")
    if len(variant_map) != n_var:
        raise ValueError(f"Variant count mismatch: BIM {len(variant_map)} vs BED {n_var}")

    return recode_plink_dosages(X), subject_ids, variant_map
