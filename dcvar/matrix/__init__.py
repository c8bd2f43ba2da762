"""
Per-variant case/control matrices derived from genotypes and expression
"""
