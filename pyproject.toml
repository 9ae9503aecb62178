[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "distlab"
version = "0.1.0"
description = "Building blocks for distributed-systems work: a simulated RPC network, a serialiser, a key/value history model and a sequential MapReduce toolkit"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "distributed-systems",
    "rpc",
    "mapreduce",
    "key-value",
    "linearizability",
    "simulation",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
distlab-mrsequential = "distlab.sequential:main"

[tool.hatch.build.targets.wheel]
packages = ["distlab"]

[tool.pytest.ini_options]
addopts = "-ra"
