"""Setup script for biner"""
from setuptools import setup
from pathlib import Path
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""
setup(
    name="biner",
    version="1.0.0",
    author="Biner Project",
    description="Combine text files into one marker-delimited archive and separate them again",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=["biner"],
    python_requires=">=3.8",
    install_requires=["rich>=12.0.0"],
    extras_require={
        "dev": ["pytest>=6.0.0", "black>=22.0.0", "flake8>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "biner=biner:cli_main",
        ],
    },
    classifiers=[
        "Intended Audience :: Developers",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Utilities",
        "Topic :: System :: Archiving",
    ],
)
