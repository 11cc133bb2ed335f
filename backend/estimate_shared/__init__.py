"""
Shared library for the estimate funnel service
"""
