[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcpchat"
version = "0.1.0"
description = "A small multi-client TCP chat server and console client with a fixed-header binary message format."
requires-python = ">=3.10"
dependencies = []
keywords = ["chat", "tcp", "server", "client", "socket", "broadcast"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tcpchat-server = "tcpchat.server_cli:main"
tcpchat-client = "tcpchat.client_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tcpchat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
