#!/usr/bin/env python
"""Setup configuration for CareLink Consent."""

from setuptools import find_packages, setup

setup(
    name="carelink-consent",
    version="0.1.0",
    description="Patient-consented, audited access to medical records across hospitals",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",
        "pydantic>=2.5.0",
        "sqlalchemy>=2.0.23",
        "psycopg2-binary>=2.9.9",
        "alembic>=1.12.0",
        "tenacity>=8.2.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
        "prometheus-client>=0.19.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "carelink=carelink.cli:cli",
        ],
    },
)
