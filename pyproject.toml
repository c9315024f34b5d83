[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hardalloc"
version = "0.1.0"
description = "Building blocks of a hardened memory allocator: chunk headers, checksums, flag parsing, page-release accounting and timing."
requires-python = ">=3.10"
dependencies = []
keywords = ["allocator", "memory", "checksum", "page release", "hardening"]
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
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["hardalloc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
