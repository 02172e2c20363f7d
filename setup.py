"""
Setup script for chem-srp.

chem-srp runs self-paced retrieval practice for chemistry courses:

1. Practice - week-based sessions in the terminal with mastery looping
2. Results - write-once storage of the full trial log per student and week
3. Ingest service - a small HTTP endpoint for sessions run elsewhere

The 'srp' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="chem-srp",
    version="1.0.0",
    description="Self-paced chemistry retrieval practice with mastery looping",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["srp", "srp.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "srp=srp.cli.main:run_cli",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="retrieval-practice mastery chemistry education cli",
)
