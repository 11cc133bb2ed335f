"""Estimate funnel service: column roles, dimensions and line-item summaries for estimate sheets."""
