[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orimod"
version = "0.1.0"
description = "Server building blocks: frame timers, a pooled HTTP client, Redis helpers, HTTP logging helpers and TCP client bookkeeping"
requires-python = ">=3.10"
keywords = ["frame timer", "redis", "http client", "tcp", "server modules"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "requests",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["orimod"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
