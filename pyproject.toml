[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "otnode"
version = "0.1.0"
description = "Application layer for Thread mesh nodes: CoAP resources, URI observers, device naming and string storage"
requires-python = ">=3.10"
dependencies = []
keywords = ["thread", "coap", "observer", "mesh", "iot"]
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
    "Topic :: System :: Networking",
    "Topic :: Home Automation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["otnode"]

[tool.pytest.ini_options]
addopts = "-ra"
