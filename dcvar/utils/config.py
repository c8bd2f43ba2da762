"""
Run configuration for dcVar analyses
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

GENETIC_MODELS = ('dom', 'rec', 'hom')
CORRECTION_TYPES = ('fdr', 'bon', 'custom')

DEFAULT_PVALUE_THRESHOLD = 0.05
DEFAULT_CORRECTION_VALUE = 0.05
MIN_NUM_GENES = 2
MIN_NUM_SUBJ_PER_GROUP = 2
CHECKPOINT_FILENAME = "dcvar_checkpoint.txt"


@dataclass
class DcVarConfig:
    """Options controlling a dcVar batch.

    Attributes:
        genetic_model: Genotype-to-phenotype model ('dom', 'rec' or 'hom')
        correction: Multiple testing correction ('fdr', 'bon', 'custom') or
            None to keep every pair passing the first-pass filter
        correction_value: FDR q-value, Bonferroni alpha, or the custom
            absolute p-value threshold
        p_threshold: First-pass p-value filter applied inside the Z tests
        min_genes: Minimum number of genes required to run
        min_group_size: Variants with fewer cases or controls are skipped
        checkpoint: Write a checkpoint after every variant
        resume: Start from the last checkpoint instead of the first variant
        resume_reprocess_last: On resume, re-run the checkpointed variant
            (True) or start at the one after it (False)
        checkpoint_file: Checkpoint path; relative paths are resolved
            against the output directory
        output_prefix: Prefix for result file names
        cpu: Worker threads for the gene-pair loop (0 = all cores)
        verbose: Print per-variant progress details
    """

    genetic_model: str = 'dom'
    correction: Optional[str] = 'fdr'
    correction_value: float = DEFAULT_CORRECTION_VALUE
    p_threshold: float = DEFAULT_PVALUE_THRESHOLD
    min_genes: int = MIN_NUM_GENES
    min_group_size: int = MIN_NUM_SUBJ_PER_GROUP
    checkpoint: bool = True
    resume: bool = False
    resume_reprocess_last: bool = True
    checkpoint_file: str = CHECKPOINT_FILENAME
    output_prefix: str = "dcvar"
    cpu: int = 1
    verbose: bool = False

    def __post_init__(self):
        self.genetic_model = str(self.genetic_model).strip().lower()
        if isinstance(self.correction, str):
            corr = self.correction.strip().lower()
            self.correction = None if corr in ('', 'none') else corr

    @property
    def correction_label(self) -> str:
        """Correction name used in output file names"""
        return self.correction if self.correction else 'none'

    @property
    def first_pass_threshold(self) -> float:
        """p-value cutoff used while computing Z values.

        The custom correction filters with its own threshold from the start.
        """
        if self.correction == 'custom':
            return float(self.correction_value)
        return float(self.p_threshold)

    def validate(self) -> "DcVarConfig":
        """Raise ValueError for any option the batch cannot run with."""
        if self.genetic_model not in GENETIC_MODELS:
            raise ValueError(
                f"Unknown genetic model '{self.genetic_model}'. Expects one of {', '.join(GENETIC_MODELS)}"
            )
        if self.correction is not None and self.correction not in CORRECTION_TYPES:
            raise ValueError(
                f"Unknown p-value filter type '{self.correction}'. "
                f"Expects one of {', '.join(CORRECTION_TYPES)}"
            )
        if not (0.0 < self.p_threshold <= 1.0):
            raise ValueError(f"p_threshold must be in (0, 1], got {self.p_threshold}")
        if self.correction is not None and not (0.0 < self.correction_value <= 1.0):
            raise ValueError(f"correction_value must be in (0, 1], got {self.correction_value}")
        if self.min_genes < 2:
            raise ValueError("min_genes must be at least 2")
        if self.min_group_size < 1:
            raise ValueError("min_group_size must be at least 1")
        if self.cpu < 0:
            raise ValueError("cpu must be >= 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
