[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cachecopy"
version = "0.1.0"
description = "Parallel directory copier that skips unchanged files using an xxHash64 cache, with optional mirroring and validation"
requires-python = ">=3.10"
keywords = ["copy", "mirror", "sync", "cache", "xxhash", "backup"]
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
    "Topic :: System :: Archiving :: Mirroring",
    "Topic :: Utilities",
]
dependencies = [
    "psutil",
    "rich",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
cachecopy = "cachecopy.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["cachecopy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
