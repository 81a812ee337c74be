"""
Shared utilities: errors, logging, time, timing.
"""
