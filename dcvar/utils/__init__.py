"""
Shared data types, statistics, configuration and checkpointing
"""
