"""
Command line entry point for dcVar batches
"""

import sys
from typing import List, Optional

from .utils import parse_args, build_config
from ..data.io_utils import validate_input_files
from ..pipelines.dcvar import DcVarPipeline


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = build_config(args)

    try:
        config.validate()
        checked = validate_input_files(
            genotype_file=args.genotype,
            expression_file=args.expression,
            snp_locations_file=args.snp_locations,
            chipseq_file=args.chipseq,
        )
        if not checked['valid']:
            raise FileNotFoundError("; ".join(checked['errors']))

        pipeline = DcVarPipeline(output_dir=args.outputdir, config=config)
        pipeline.load_data(
            genotype_file=args.genotype,
            expression_file=args.expression,
            genotype_format=args.format,
            expression_format=args.expression_format,
            snp_locations_file=args.snp_locations,
            chipseq_file=args.chipseq,
        )
        pipeline.run_analysis()
    except (ValueError, FileNotFoundError, OSError) as e:
        sys.exit(f"Error: {e}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
