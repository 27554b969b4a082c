[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "envreload"
version = "0.1.0"
description = "Auto-reloading environment holders and scope-bound object references"
requires-python = ">=3.10"
keywords = ["reload", "autoreload", "watch", "watchdog", "scope", "borrow"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = ["watchdog"]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["envreload"]

[tool.pytest.ini_options]
addopts = "-ra"
