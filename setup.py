#!/usr/bin/env python
from setuptools import setup

setup(
    name="asyncio_resp",
    version="0.1.0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    description="Redis wire protocol (RESP) client for asyncio.",
    long_description=open("README.rst").read(),
    packages=["asyncio_resp"],
    python_requires=">=3.8",
    extras_require={"test": ["pytest"]},
)
