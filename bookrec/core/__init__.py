"""
Core pipeline: record loading, store access, index build, query and startup modes.
"""
