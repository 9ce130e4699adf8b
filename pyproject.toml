[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "seedmap"
version = "0.1.0"
description = "Minimizer-based sequence indexing, seeding, chaining and PAF output"
requires-python = ">=3.10"
dependencies = []
keywords = ["bioinformatics", "minimizer", "sequence mapping", "chaining", "paf", "fasta"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
seedmap = "seedmap.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["seedmap"]

[tool.pytest.ini_options]
addopts = "-ra"
