"""
Core modules for LLM Usage Analyzer.

This package contains log parsing, usage aggregation, cost estimation,
plan-fit classification and trend analysis.
"""
