#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Standard library
from setuptools import setup, find_packages


# List of packages
pkgs = find_packages(include=["ginsync", "ginsync.*"])

# Create the build
setup(
    name="ginsync",
    packages=pkgs,
    python_requires=">=3.8",
    install_requires=[
        "PyYAML",
        "click",
        "httpx",
        "pydantic>=2",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    description="Client for git/git-annex repositories on a GIN server",
    entry_points={
        "console_scripts": [
            "gin=ginsync.cli:main",
        ]
    },
    version="1.0.0")
