from __future__ import annotations

from setuptools import find_packages, setup

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

if __name__ == "__main__":
    setup(
        name="itembank-dedup",
        version=PROJECT_VERSION,
        python_requires=PYTHON_REQUIRES_SPECIFIER,
        packages=find_packages(include=["config", "itembank", "src", "src.*"]),
        install_requires=[
            "SQLAlchemy>=2.0",
            "pydantic>=2.5",
            "loguru>=0.7",
            "python-dotenv>=1.0",
            "tomli-w>=1.0",
        ],
        extras_require={
            "postgres": ["psycopg2-binary>=2.9"],
            "test": ["pytest>=7.4", "hypothesis>=6.90"],
        },
    )
