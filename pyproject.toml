[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "x86boot"
version = "0.11.10"
description = "Data structures and boot-time logic of an x86_64 BIOS bootloader: config encoding, boot info, MBR, FAT, VESA, E820 and descriptor tables."
requires-python = ">=3.10"
keywords = ["bootloader", "x86_64", "bios", "fat", "mbr", "vesa", "e820", "gdt", "paging"]
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
    "Topic :: System :: Boot",
    "Topic :: System :: Filesystems",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "hypothesis",
]

[tool.hatch.build.targets.wheel]
packages = ["x86boot"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
