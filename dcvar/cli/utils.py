import argparse
from typing import List, Optional

from ..utils.config import (
    DcVarConfig, GENETIC_MODELS, CORRECTION_TYPES,
    DEFAULT_PVALUE_THRESHOLD, DEFAULT_CORRECTION_VALUE,
    MIN_NUM_SUBJ_PER_GROUP, CHECKPOINT_FILENAME,
)

CORRECTION_CHOICES = CORRECTION_TYPES + ('none',)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments for the dcVar pipeline"""
    parser = argparse.ArgumentParser(
        description="Differential correlation of gene expression conditioned on variant genotype (dcVar)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--genotype", "-g", required=True,
                       help="Variant genotype file (tab-delimited, .gz, or PLINK prefix)")
    parser.add_argument("--expression", "-e", required=True,
                       help="Gene expression file (tab-delimited or HDF5)")

    # Optional inputs
    parser.add_argument("--format", "-f", default=None,
                       choices=['csv', 'tsv', 'plink'],
                       help="Genotype file format")
    parser.add_argument("--expression-format", default=None,
                       choices=['csv', 'tsv', 'hdf5'],
                       help="Gene expression file format")
    parser.add_argument("--snp-locations", default=None,
                       help="SNP locations file (SNP CHROM POS <unused> REF)")
    parser.add_argument("--chipseq", default=None,
                       help="ChIP-seq histone modification site reads file")

    # Output
    parser.add_argument("--outputdir", "-o", default="./dcVar_results",
                       help="Output directory")
    parser.add_argument("--output-prefix", default="dcvar",
                       help="Prefix for output file names")

    # Analysis
    parser.add_argument("--model", "-m", default='dom', choices=list(GENETIC_MODELS),
                       help="Genetic model used to split subjects into cases and controls")
    parser.add_argument("--correction", "-c", default='fdr', choices=list(CORRECTION_CHOICES),
                       help="Multiple testing correction")
    parser.add_argument("--correction-value", type=float, default=DEFAULT_CORRECTION_VALUE,
                       help="FDR q-value, Bonferroni alpha or custom p-value threshold")
    parser.add_argument("--p-threshold", type=float, default=DEFAULT_PVALUE_THRESHOLD,
                       help="First pass p-value filter")
    parser.add_argument("--min-group-size", type=int, default=MIN_NUM_SUBJ_PER_GROUP,
                       help="Skip variants with fewer cases or controls")

    # Checkpointing
    parser.add_argument("--no-checkpoint", action='store_false', dest='checkpoint',
                       help="Do not write a checkpoint after each variant")
    parser.add_argument("--resume", action='store_true',
                       help="Resume from the last checkpoint")
    parser.add_argument("--resume-skip-completed", action='store_true',
                       help="On resume, start after the checkpointed variant instead of re-running it")
    parser.add_argument("--checkpoint-file", default=CHECKPOINT_FILENAME,
                       help="Checkpoint file (relative paths are inside the output directory)")

    # Runtime
    parser.add_argument("--cpu", type=int, default=1,
                       help="Worker threads for gene pair tests (0 = all cores)")
    parser.add_argument("--verbose", "-v", action='store_true',
                       help="Print per-variant test details")

    parser.set_defaults(checkpoint=True)

    return parser.parse_args(argv)


def build_config(args) -> DcVarConfig:
    """DcVarConfig from parsed command line arguments"""
    return DcVarConfig(
        genetic_model=args.model,
        correction=None if args.correction == 'none' else args.correction,
        correction_value=args.correction_value,
        p_threshold=args.p_threshold,
        min_group_size=args.min_group_size,
        checkpoint=args.checkpoint,
        resume=args.resume,
        resume_reprocess_last=not args.resume_skip_completed,
        checkpoint_file=args.checkpoint_file,
        output_prefix=args.output_prefix,
        cpu=args.cpu,
        verbose=args.verbose,
    )
