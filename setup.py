"""
Setup script for siakad-sync.

SIAKAD Sync is the client core of the SIAKAD student portal. It serves
three roles:

1. Offline-first sync - Tasks and messages created on the device reach the server
2. Attendance companion - Daily per-course reminders and a class digest
3. Terminal client - The 'siakad' command for day-to-day use

The 'siakad' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="siakad-sync",
    version="1.0.0",
    description="Offline-first client core for the SIAKAD student portal",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="SIAKAD",
    packages=find_packages(include=["siakad", "siakad.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
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
            "siakad=siakad.cli.main:main",
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
    ],
    keywords="siakad student-portal offline-sync attendance reminders",
)
