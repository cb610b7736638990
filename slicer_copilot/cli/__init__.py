"""CLI interface for the slicer_copilot project optimizer.

This package provides command-line access to the optimize pipeline and to
inspection and validation helpers for archives, responses and config files.
"""
