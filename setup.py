"""
Setup configuration for hostscale - deployment detection and cloud provider abstraction
"""
from setuptools import setup, find_packages
from pathlib import Path

# Read the README for the long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read the requirements
requirements = (this_directory / "requirements.txt").read_text().strip().split("\n")

# Version
version = "0.1.0"

setup(
    name="hostscale",
    version=version,
    author="hostscale Contributors",
    description="Deployment detection, workload scaling and managed databases for hosting control panels",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Packages
    package_dir={"": "src"},
    packages=find_packages("src", exclude=["tests", "tests.*"]),
    include_package_data=True,

    # Requirements
    python_requires=">=3.8",
    install_requires=requirements,

    # Optional dependencies
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "pytest-mock>=3.0",
            "black>=22.0",
            "isort>=5.0",
            "ruff>=0.0.280",
        ],
    },

    # Entry points for the CLI command
    entry_points={
        "console_scripts": [
            "hostscale=hostscale.cli:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX :: Linux",
    ],

    keywords="hosting, kubernetes, autoscaling, hpa, vpa, managed-database, rds, cloud-sql, devops",
)
