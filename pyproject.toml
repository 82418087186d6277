[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "whereabouts"
version = "0.1.0"
description = "Cluster-wide IP address management: IP pools, overlapping range reservations and a reconciler for orphaned allocations."
requires-python = ">=3.10"
keywords = ["ipam", "ip-address-management", "kubernetes", "cni", "networking", "reconciler"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "semver",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["whereabouts"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
