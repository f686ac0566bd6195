[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fwupkit"
version = "0.1.0"
description = "Building blocks for firmware update tooling: U-Boot environments, sparse file maps, block-aligned writers, framed output and progress reporting"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "firmware",
    "update",
    "u-boot",
    "sparse-file",
    "embedded",
    "framing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
fwupkit-framing = "fwupkit.framing:main"

[tool.hatch.build.targets.wheel]
packages = ["fwupkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
