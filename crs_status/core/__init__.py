"""
Core modules for CRS Status.

This package contains the error taxonomy, the tagged fetch result,
display formatting and resolution, and the refresh orchestrator.
"""
