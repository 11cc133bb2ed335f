"""
Shared services: spreadsheet parsing, LLM gateway, FastAPI service factory
"""
