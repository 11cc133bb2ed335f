"""
Shared model definitions for the estimate funnel
"""
