"""
setup.py configuration script for couch_backup project.

An incremental backup system for CouchDB-compatible document stores that
copies every new document revision into dedicated backup stores.
"""

import datetime
import sys

from setuptools import find_packages, setup

# Add src to path to import local module
sys.path.append("./src")

import couch_backup  # noqa: E402

local_version = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d.%H%M%S")

setup(
    name="couch_backup",
    version=couch_backup.__version__ + "+" + local_version,
    description="Incremental revision backup for CouchDB-compatible document stores",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(where="./src"),
    package_dir={"": "src"},
    entry_points={
        "console_scripts": [
            "couch-backup=couch_backup.cli.main:main",
        ],
    },
    install_requires=[
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "requests>=2.28.0",
        "tenacity>=8.0.0",
        "structlog>=22.0.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "coverage>=7.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
            "coverage>=7.0.0",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
