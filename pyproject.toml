[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ebscsi"
version = "1.1.1"
description = "Controller and identity services of a block-storage CSI driver: request validation, topology handling, tagging and in-flight request tracking"
requires-python = ">=3.10"
dependencies = []
keywords = ["csi", "ebs", "kubernetes", "storage", "volumes", "snapshots"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ebscsi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
