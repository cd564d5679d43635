#!/usr/bin/env python
# -*- coding: utf-8 -*-

import os
import re

from setuptools import setup


def get_version(package):
    """
    Return package version as listed in `__version__` in `init.py`.
    """
    init_py = open(os.path.join(package, "__init__.py")).read()
    return re.search("__version__ = ['\"]([^'\"]+)['\"]", init_py).group(1)


def get_long_description():
    """
    Return the README.
    """
    return open("README.md", "r", encoding="utf8").read()


def get_packages(package):
    """
    Return root package and all sub-packages.
    """
    return [
        dirpath
        for dirpath, dirnames, filenames in os.walk(package)
        if os.path.exists(os.path.join(dirpath, "__init__.py"))
    ]


setup(
    name="wsmux",
    version=get_version("wsmux"),
    license="BSD",
    description="Websocket session multiplexer for Starlette",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_data={"wsmux": ["py.typed"]},
    packages=get_packages("wsmux"),
    python_requires=">=3.8",
    install_requires=[
        "anyio>=4.0",
        "starlette>=0.37",
    ],
    extras_require={
        "uvicorn": ["uvicorn[standard]"],
        "tests": ["pytest", "httpx", "uvicorn"],
    },
    entry_points={"console_scripts": ["wsmux=wsmux.__main__:main"]},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Topic :: Internet :: WWW/HTTP",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
    ],
)
