[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dpstats"
version = "0.1.0"
description = "Differentially private aggregate statistics: counts, bounded sums and variances with Laplace noise"
requires-python = ">=3.10"
dependencies = []
keywords = ["differential privacy", "laplace mechanism", "statistics", "privacy", "aggregation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dpstats"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
