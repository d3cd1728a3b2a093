[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eoiptun"
version = "0.1.0"
description = "Runtime building blocks for EoIP tunnels: lifecycle state machine, packet buffers, tunnel registry, TAP I/O and MTU discovery"
requires-python = ">=3.10"
keywords = ["eoip", "gre", "tunnel", "tap", "mtu", "pmtud", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["eoiptun"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
