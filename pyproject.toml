[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flowagg"
version = "0.1.0"
description = "Aggregate JSON network flow logs, enrich flow messages and run a collector front end"
requires-python = ">=3.10"
keywords = ["netflow", "sflow", "flow", "aggregation", "network-monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
flowagg-aggregate = "flowagg.cli:main"
flowagg-collector = "flowagg.collector:main"

[tool.hatch.build.targets.wheel]
packages = ["flowagg"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
