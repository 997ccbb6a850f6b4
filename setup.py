#!/usr/bin/env python
"""Setup shim for tools that cannot build from pyproject.toml alone."""

from setuptools import setup

if __name__ == "__main__":
    setup()
