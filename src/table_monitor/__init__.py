"""
Table Monitor

Polls a monitored table for rows inserted since the last successful run,
writes them to a dated audit log and advances a persisted watermark.
"""

__version__ = "1.0.0"
