from setuptools import setup, find_packages

setup(
    name="scribe-sync",
    version="0.1.0",
    description="Chunked audio recording upload with an idempotent session ledger",
    author="",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "rich>=12.5.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "numpy>=1.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "scribesync=scribesync.main:main",
        ],
    },
)
