"""
Input loaders and result writers
"""
