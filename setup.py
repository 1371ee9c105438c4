#!/usr/bin/env python3
"""
Setup script for the Realtime Voice Translator module.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="realtime-voice-translator",
    version="1.0.0",
    description="Live voice interpreter on top of a realtime conversational API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["realtime_translator", "realtime_translator.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "sounddevice",
        "pydantic>=2.0.0",
        "websockets>=13.0",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "realtime-translator=realtime_translator.core:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
