#!/usr/bin/env python
"""Setup configuration for Violet FHIR."""

from setuptools import find_packages, setup

setup(
    name="violet-fhir",
    version="1.0.0",
    description="FHIR R4 REST server over a schema-less namespace/resource store",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"violet_fhir.healthcare": ["schemas/*.json"]},
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy>=2.0.23",
        "alembic>=1.12.0",
        "python-jose[cryptography]>=3.3.0",
        "structlog>=23.2.0",
        "httpx>=0.25.0",
    ],
    extras_require={
        "postgres": [
            "psycopg2-binary>=2.9.9",
        ],
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "violet-fhir=violet_fhir.main:main",
        ],
    },
)
