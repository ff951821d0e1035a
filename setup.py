#!/usr/bin/env python3
"""
PoWToken - A proof-of-work mineable token with Bitcoin-style halving

Install with: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="powtoken",
    version="1.0.0",
    author="PoWToken Team",
    description="A proof-of-work mineable token with self-adjusting difficulty and halving rewards",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/powtoken/powtoken",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
    ],
    python_requires=">=3.8",
    install_requires=[
        "argon2-cffi>=21.3.0",
        "ecdsa>=0.18.0",
        "pycryptodome>=3.15.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "powtoken=powtoken.cli:main",
        ],
    },
)
