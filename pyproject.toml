[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "irisrestful"
version = "0.1.0"
description = "A light HTTP/RESTful tile and metadata server for Iris slide files, usable from OpenSeaDragon-style viewers"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "iris",
    "digital pathology",
    "whole slide image",
    "tile server",
    "rest",
    "wado-rs",
    "dicomweb",
    "openseadragon",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Healthcare Industry",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Scientific/Engineering :: Medical Science Apps.",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["irisrestful"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
