[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "roomchat"
version = "0.1.0"
description = "A small TCP chat room: a broadcasting server with persistent history and a line-oriented client."
requires-python = ">=3.10"
dependencies = []
keywords = ["chat", "chat-room", "tcp", "socket", "select"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
roomchat-server = "roomchat.server:main"
roomchat-client = "roomchat.client:main"

[tool.hatch.build.targets.wheel]
packages = ["roomchat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
