import runpy
from pathlib import Path

from setuptools import setup, find_packages

# Read the version without importing the package and its dependencies
__version__ = runpy.run_path(
    str(Path(__file__).parent / "opforge" / "version.py")
)["__version__"]

setup(
    name="opforge",
    version=__version__,
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "lark>=1.1.5",
        "typer>=0.9.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "opforge=opforge.main:app",
        ],
    },
    python_requires=">=3.9",
)
