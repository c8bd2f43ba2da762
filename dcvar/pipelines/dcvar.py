"""
dcVar Pipeline Module

Runs a differential correlation batch: loads genotypes and gene expression,
then for every variant splits subjects into cases and controls by a genetic
model, tests every gene pair for a change in correlation between the groups,
applies a multiple testing correction and writes the surviving pairs.
"""

import time
import warnings
import numpy as np
import pandas as pd
from pathlib import Path
from typing import List, Optional, Sequence, Union
from joblib import Parallel

from ..data.loaders import (
    load_genotype_file, load_expression_file, load_snp_locations_file,
    load_chipseq_file, check_subject_alignment, detect_file_format
)
from ..data.io_utils import results_filename, write_variant_results, write_summary
from ..utils.config import DcVarConfig
from ..utils.checkpoint import CheckpointManager
from ..utils.data_types import GenotypeMatrix, VariantMap, ExpressionMatrix, VariantResult
from ..utils.stats import n_gene_combinations
from ..matrix.case_control import (
    map_genotypes_to_model, has_minimum_group_sizes, split_expression_case_control
)
from ..association.dcvar_z import DCVAR_ZTest, resolve_n_jobs
from ..association.correction import DCVAR_Prune, get_correction


class DcVarPipeline:
    """
    High-level pipeline for a dcVar batch.

    Typical workflow:
        1. Initialize pipeline with output directory and a DcVarConfig
        2. Load genotype and expression data (optionally SNP locations and
           ChIP-seq reads for annotating the summary)
        3. Run the variant loop; one results file per variant with surviving
           gene pairs, a checkpoint after each variant, and a summary CSV

    Attributes:
        genotype_matrix (GenotypeMatrix): Variant genotypes (n_variants × n_subjects)
        variant_map (VariantMap): Variant names with optional locations
        expression (ExpressionMatrix): Gene expression (n_genes × n_subjects)
        chipseq_df (DataFrame): ChIP-seq reads keyed by SNP (if loaded)
        results (list): VariantResult for every variant processed by the last run
        output_dir (Path): Output directory for results

    Example:
        >>> from dcvar import DcVarPipeline, DcVarConfig
        >>> pipeline = DcVarPipeline('./dcvar_out', DcVarConfig(genetic_model='rec'))
        >>> pipeline.load_data(genotype_file='snps.tab', expression_file='expr.tab')
        >>> pipeline.run_analysis()
    """

    def __init__(self, output_dir: str = "./dcVar_results", config: Optional[DcVarConfig] = None):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.config = config if config is not None else DcVarConfig()

        self.genotype_matrix: Optional[GenotypeMatrix] = None
        self.variant_map: Optional[VariantMap] = None
        self.genotype_subjects: List[str] = []
        self.expression: Optional[ExpressionMatrix] = None
        self.chipseq_df: Optional[pd.DataFrame] = None

        self.results: List[VariantResult] = []
        self.log_file = self.output_dir / f"{self.config.output_prefix}.log"

    def log(self, message: str):
        """Print a message and append it to the run log"""
        print(message)
        with open(self.log_file, 'a') as fh:
            fh.write(message + "\n")

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  genotype_file: str,
                  expression_file: str,
                  genotype_format: Optional[str] = None,
                  expression_format: Optional[str] = None,
                  snp_locations_file: Optional[str] = None,
                  chipseq_file: Optional[str] = None):
        """
        Load genotype, expression and optional annotation files.

        Args:
            genotype_file: Variant genotypes (tab-delimited, gzipped or PLINK)
            expression_file: Gene expression (tab-delimited or HDF5)
            genotype_format: 'tsv', 'csv' or 'plink'; auto-detected if None
            expression_format: 'tsv', 'csv' or 'hdf5'; auto-detected if None
            snp_locations_file: SNP CHROM POS <unused> REF table
            chipseq_file: ChIP-seq histone modification site reads

        Raises:
            FileNotFoundError: If an input file does not exist
            ValueError: If a file cannot be parsed or subject counts differ
        """
        step_start = time.time()
        self.log_step("Step 1: Loading input data")

        if genotype_format is None:
            genotype_format = detect_file_format(genotype_file)
            self.log(f"   Detected genotype format: {genotype_format}")

        try:
            self.genotype_matrix, self.genotype_subjects, self.variant_map = load_genotype_file(
                genotype_file, file_format=genotype_format
            )
        except FileNotFoundError:
            raise
        except (ValueError, KeyError, OSError) as e:
            raise ValueError(f"Error loading genotype file: {e}") from e
        self.log(f"   Loaded {self.genotype_matrix.n_variants} variants x "
                 f"{self.genotype_matrix.n_subjects} subjects")

        try:
            self.expression = load_expression_file(expression_file, file_format=expression_format)
        except FileNotFoundError:
            raise
        except (ValueError, KeyError, OSError) as e:
            raise ValueError(f"Error loading gene expression file: {e}") from e
        self.log(f"   Loaded {self.expression.n_genes} genes x {self.expression.n_subjects} subjects")

        check_subject_alignment(self.genotype_subjects, self.expression.subject_ids)

        if snp_locations_file:
            locations = load_snp_locations_file(snp_locations_file)
            self.variant_map = self.variant_map.with_locations(locations)
            n_located = int(self.variant_map.data['CHROM'].notna().sum())
            self.log(f"   Loaded locations for {n_located} of {self.variant_map.n_variants} variants")

        if chipseq_file:
            self.chipseq_df = load_chipseq_file(chipseq_file)
            self.log(f"   Loaded ChIP-seq reads for {len(self.chipseq_df)} SNPs")

        self.log_step("Data loading", step_start)

    def set_data(self,
                 genotypes: Union[GenotypeMatrix, np.ndarray],
                 expression: Union[ExpressionMatrix, np.ndarray],
                 variant_names: Optional[Sequence[str]] = None,
                 gene_names: Optional[Sequence[str]] = None,
                 subject_ids: Optional[Sequence[str]] = None):
        """
        Use in-memory data instead of files.

        ``genotypes`` is variants × subjects and ``expression`` genes × subjects.
        Missing names default to ``var{k}``, ``gene{k}`` and ``subj{k}``.
        """
        if not isinstance(genotypes, GenotypeMatrix):
            genotypes = GenotypeMatrix(np.asarray(genotypes))
        if not isinstance(expression, ExpressionMatrix):
            expression = np.asarray(expression, dtype=np.float64)
            if expression.ndim != 2:
                raise ValueError(f"Expression matrix must be 2D, got {expression.ndim}D")
            if gene_names is None:
                gene_names = [f"gene{k}" for k in range(expression.shape[0])]
            if subject_ids is None:
                subject_ids = [f"subj{k}" for k in range(expression.shape[1])]
            expression = ExpressionMatrix(expression, gene_names, subject_ids)

        if variant_names is None:
            variant_names = [f"var{k}" for k in range(genotypes.n_variants)]
        if len(variant_names) != genotypes.n_variants:
            raise ValueError(
                f"Variant names ({len(variant_names)}) != genotype rows ({genotypes.n_variants})"
            )

        check_subject_alignment(
            subject_ids if subject_ids is not None else expression.subject_ids,
            expression.subject_ids,
        )
        if genotypes.n_subjects != expression.n_subjects:
            raise ValueError(
                f"Genotype subjects ({genotypes.n_subjects}) != expression subjects ({expression.n_subjects})"
            )

        self.genotype_matrix = genotypes
        self.variant_map = VariantMap(list(variant_names))
        self.genotype_subjects = list(expression.subject_ids)
        self.expression = expression

    def _checkpoint_manager(self) -> CheckpointManager:
        path = Path(self.config.checkpoint_file)
        if not path.is_absolute():
            path = self.output_dir / path
        return CheckpointManager(path)

    def _validate_inputs(self):
        if self.genotype_matrix is None or self.expression is None:
            raise ValueError("Data not loaded.")
        if self.genotype_matrix.n_variants < 1:
            raise ValueError("Genotype data contains no variants")
        if self.expression.n_genes < self.config.min_genes:
            raise ValueError(
                f"Gene expression data has {self.expression.n_genes} genes; "
                f"at least {self.config.min_genes} are required"
            )
        if self.genotype_matrix.n_subjects != self.expression.n_subjects:
            raise ValueError(
                f"Genotype subjects ({self.genotype_matrix.n_subjects}) != "
                f"expression subjects ({self.expression.n_subjects})"
            )

    def run_analysis(self) -> List[VariantResult]:
        """
        Run the variant loop.

        Every variant is processed in order: genotype mapping, case/control
        split, Z tests with the first-pass filter, the configured correction,
        results file, checkpoint. Variants with a group smaller than
        ``min_group_size`` are skipped with a warning line.

        Returns:
            List of VariantResult, one per variant processed in this run

        Raises:
            ValueError: Invalid configuration, too few variants or genes,
                invalid genotype codes
            FileNotFoundError: Resume requested without a checkpoint
            OSError: A results file or the checkpoint cannot be written
        """
        cfg = self.config.validate()
        correction = get_correction(cfg.correction, cfg.correction_value) if cfg.correction else None
        self._validate_inputs()

        step_start = time.time()
        self.log_step("Step 2: Running dcVar analysis")

        variant_names = self.variant_map.snp_ids
        gene_names = self.expression.gene_names
        n_variants = self.genotype_matrix.n_variants
        n_genes = self.expression.n_genes
        p_threshold = cfg.first_pass_threshold

        self.log(f"   Genetic model [ {cfg.genetic_model} ]")
        self.log(f"   Correction [ {cfg.correction_label} ] value [ {cfg.correction_value} ]")
        self.log(f"   First pass p-value threshold [ {p_threshold} ]")
        self.log(f"   [ {n_variants} ] variants, [ {n_genes} ] genes, "
                 f"[ {n_gene_combinations(n_genes):.0f} ] gene pairs per variant")

        checkpoint = self._checkpoint_manager()
        start_index = 0
        if cfg.resume:
            start_index = checkpoint.resume_index(variant_names, reprocess_last=cfg.resume_reprocess_last)
            self.log(f"   Resuming from checkpoint {checkpoint.path} at variant index {start_index}")

        n_jobs = resolve_n_jobs(cfg.cpu)
        self.log(f"   Using {n_jobs} worker thread(s)")

        self.results = []
        with Parallel(n_jobs=n_jobs, backend='threading') as parallel:
            for v_idx in range(start_index, n_variants):
                result = self._process_variant(v_idx, variant_names[v_idx], gene_names,
                                               correction, p_threshold, n_variants, parallel)
                self.results.append(result)
                if cfg.checkpoint:
                    checkpoint.write(v_idx, variant_names[v_idx])

        summary_path = self.output_dir / f"{cfg.output_prefix}.dcvar_summary.csv"
        write_summary(
            self.results,
            summary_path,
            variant_map=self.variant_map.to_dataframe(),
            chipseq=self.chipseq_df,
            merge_existing=cfg.resume,
        )
        self.log(f"\nSaved variant summary to {summary_path}")

        n_written = sum(1 for r in self.results if r.status == 'written')
        n_skipped = sum(1 for r in self.results if r.status == 'skipped')
        self.log(f"   [ {len(self.results)} ] variants processed, [ {n_written} ] results files, "
                 f"[ {n_skipped} ] skipped")
        self.log_step("dcVar analysis", step_start)
        self.log("\ndcVar Analysis Completed Successfully.")
        return self.results

    def _process_variant(self, v_idx, variant_name, gene_names, correction,
                         p_threshold, n_variants, parallel) -> VariantResult:
        cfg = self.config
        n_genes = len(gene_names)
        self.log(f"\n-- Variant [ {v_idx} ] [ {variant_name} ] --")

        labels = map_genotypes_to_model(self.genotype_matrix.get_variant(v_idx), cfg.genetic_model)
        result = VariantResult(
            variant_index=v_idx,
            variant=variant_name,
            status='skipped',
            n_cases=labels.n_cases,
            n_ctrls=labels.n_ctrls,
            n_undetermined=labels.n_undetermined,
        )
        self.log(f"   Cases [ {labels.n_cases} ] controls [ {labels.n_ctrls} ] "
                 f"undetermined [ {labels.n_undetermined} ]")

        if not has_minimum_group_sizes(labels, cfg.min_group_size):
            self.log(f"   WARNING: variant [ {variant_name} ] has fewer than "
                     f"[ {cfg.min_group_size} ] cases or controls, skipping")
            return result

        cases, ctrls = split_expression_case_control(self.expression, labels, min_genes=cfg.min_genes)
        z_results = DCVAR_ZTest(cases, ctrls, p_threshold=p_threshold,
                                parallel=parallel, verbose=cfg.verbose, log=self.log)
        result.n_infinite = z_results.n_infinite
        result.n_failed = z_results.n_failed
        result.n_passed = z_results.n_passed
        result.min_p = z_results.min_p
        result.max_p = z_results.max_p
        self.log(f"   [ {z_results.n_passed} ] gene pairs passed first pass, "
                 f"[ {z_results.n_failed} ] failed, [ {z_results.n_infinite} ] infinite Z")

        matrices = z_results.matrices
        if correction is not None:
            report = DCVAR_Prune(matrices, correction, n_variants=n_variants,
                                 n_genes=n_genes, verbose=cfg.verbose, log=self.log)
            result.n_pruned = report.n_pruned
            self.log(f"   [ {report.n_pruned} ] pruned by [ {report.correction} ], "
                     f"[ {report.n_remaining} ] remaining")

        out_path = self.output_dir / results_filename(cfg.output_prefix, cfg.correction, variant_name)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            written = write_variant_results(out_path, matrices, gene_names)
        for w in caught:
            self.log(f"   WARNING: {w.message}")

        if written:
            result.status = 'written'
            result.n_written = matrices.nnz
            result.output_file = str(out_path)
            self.log(f"   Wrote [ {matrices.nnz} ] gene pairs to {out_path}")
        else:
            result.status = 'empty'
        return result
