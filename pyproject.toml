[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dnsvard"
version = "0.1.0"
description = "Local DNS routing helpers: resolver files for macOS and Linux, launchd agents, runtime leases, route merging and a TCP proxy"
requires-python = ">=3.10"
dependencies = []
keywords = ["dns", "resolver", "systemd-resolved", "dnsmasq", "launchd", "local-development", "tcp-proxy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dnsvard"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
