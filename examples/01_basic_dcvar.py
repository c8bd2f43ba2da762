#!/usr/bin/env python3
"""
Example 01: Basic dcVar Analysis

This example runs the simplest dcVar batch: every variant splits subjects into
cases and controls with the dominant model, every gene pair is tested for a
change in correlation, and pairs surviving the FDR correction are written.

Prerequisites:
- example_snps.tab: variants x subjects genotype codes (0/1/2, blank = missing)
- example_expression.tab: genes x subjects expression values
"""

from dcvar import DcVarPipeline, DcVarConfig


def main():
    print("=" * 70)
    print("EXAMPLE 01: Basic dcVar Analysis")
    print("=" * 70)

    config = DcVarConfig(
        genetic_model='dom',   # cases carry two alternate alleles
        correction='fdr',      # Benjamini-Hochberg across the batch
        correction_value=0.05,
        cpu=4,
        output_prefix='example01',
    )
    pipeline = DcVarPipeline(output_dir='./example01_results', config=config)

    print("\n1. Loading data...")
    pipeline.load_data(
        genotype_file='example_snps.tab',
        expression_file='example_expression.tab',
    )

    print("\n2. Running dcVar...")
    results = pipeline.run_analysis()

    written = [r for r in results if r.status == 'written']
    print("\n" + "=" * 70)
    print("Analysis Complete!")
    print("=" * 70)
    print(f"\n{len(written)} of {len(results)} variants produced results in ./example01_results/")
    print("- example01.fdr.<variant>.pass.tab  (surviving gene pairs per variant)")
    print("- example01.dcvar_summary.csv       (one row per variant)")
    print("- dcvar_checkpoint.txt              (resume with DcVarConfig(resume=True))")


if __name__ == '__main__':
    main()
