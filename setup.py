#!/usr/bin/env python3
"""
Setup script for mailcache.

Install with `pip install .`, or `pip install -e ".[dev]"` for development.
"""

import re
import sys
from pathlib import Path

if sys.version_info < (3, 11):
    sys.exit("Error: mailcache requires Python 3.11 or higher.")

from setuptools import setup

HERE = Path(__file__).parent

# Read version from __version__.py for consistency
try:
    version_content = (HERE / "src" / "mailcache" / "__version__.py").read_text(encoding="utf-8")
    version_match = re.search(r'^__version__\s*=\s*["\']([^"\']+)["\']', version_content, re.M)
    version = version_match.group(1) if version_match else "0.1.0"
except OSError:
    version = "0.1.0"

# Read long description from README if available
readme_path = HERE / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
    long_description_content_type = "text/markdown"
else:
    long_description = "Local mail cache and search engine backed by SQLite"
    long_description_content_type = "text/plain"

# Core dependencies
install_requires = [
    "pydantic[email]>=2.5.0",
    "pydantic-settings>=2.1.0",
]

# Development dependencies
extras_require = {
    "dev": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "black>=23.0.0",
        "flake8>=6.1.0",
        "mypy>=1.7.0",
    ],
}

setup(
    name="mailcache",
    version=version,
    description="Local mail cache and search engine backed by SQLite",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    author="mailcache Team",
    license="MIT",
    python_requires=">=3.11",
    packages=["mailcache", "mailcache.storage"],
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "mailcache=mailcache.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Email",
        "Topic :: Database",
    ],
    keywords=["email", "cache", "sqlite", "fts5", "search"],
)
