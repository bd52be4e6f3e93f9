[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "etcore"
version = "0.1.0"
description = "Building blocks for a persistent remote terminal: port forwarding, UUIDs and UTF conversions"
requires-python = ">=3.10"
dependencies = []
keywords = ["terminal", "port-forwarding", "tunnel", "uuid", "base62", "utf-8", "utf-16", "utf-32"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["etcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
