"""Workflow template and instance engine for clinical signposting."""

__version__ = "0.1.0"
