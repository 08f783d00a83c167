[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ledgersim"
version = "0.1.0"
description = "Threaded simulation of users and nodes recording payments in a shared in-memory ledger"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "ledger", "blockchain", "transactions", "threads"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ledgersim = "ledgersim.master:main"

[tool.hatch.build.targets.wheel]
packages = ["ledgersim"]

[tool.pytest.ini_options]
addopts = "-ra"
