#!/usr/bin/env python3
"""
Setup script for the estimate-funnel packages

Installs both import packages from backend/:
- estimate_shared: models, settings, parsers, LLM gateway, service factory
- estimate_funnel: column role inference, size extraction, HTTP service
"""

from setuptools import setup, find_packages

setup(
    name="estimate-funnel",
    version="0.1.0",
    package_dir={"": "backend"},
    packages=find_packages("backend", exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        # 🚀 Web Framework
        "fastapi>=0.104.1,<0.137",
        "uvicorn[standard]>=0.24.0",
        "httpx>=0.25.2",

        # 📋 Data Validation & Settings
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",

        # 🌐 File upload (multipart form parsing)
        "python-multipart>=0.0.6",

        # 📊 Spreadsheet parsing
        "openpyxl>=3.1.2",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    package_data={
        "estimate_shared": ["py.typed"],
    },
)
