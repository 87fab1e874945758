"""
LLM Usage Analyzer.

Aggregates local coding-agent usage logs into canonical usage reports and
compares subscription plans against pay-as-you-go API pricing.
"""

__version__ = "1.0.0"
