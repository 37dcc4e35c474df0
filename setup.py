# setup.py
from setuptools import setup, find_packages

setup(
    name="batchpart",
    version="0.1.0",
    description="Resumable parallel batch partitioning and upload of work items",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.28",
        "setproctitle>=1.3",
        "tqdm>=4.64",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["batchpart=batchpart.cli:main"],
    },
)
