[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cslabs"
version = "0.1.0"
description = "Cache simulator, matrix transpose checker and heap allocator test driver for systems programming labs"
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "simulator", "malloc", "allocator", "education", "memory", "trace"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Environment :: Console",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
csim = "cslabs.csim:main"
mdriver = "cslabs.mdriver:main"

[tool.hatch.build.targets.wheel]
packages = ["cslabs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
