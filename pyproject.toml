[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "miniredis"
version = "2.0.0"
description = "Building blocks for an in-memory Redis test server: RESP parsing, a threaded command server, key patterns, sorted sets and pub/sub"
requires-python = ">=3.10"
dependencies = []
keywords = ["redis", "testing", "resp", "mock", "server", "pubsub"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["miniredis"]

[tool.pytest.ini_options]
addopts = "-ra"
