[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "e2eharness"
version = "0.1.0"
description = "Environment, feature and polling-wait helpers for end-to-end test suites"
requires-python = ">=3.10"
dependencies = []
keywords = ["testing", "e2e", "end-to-end", "wait", "polling", "features", "hooks"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["e2eharness"]

[tool.pytest.ini_options]
addopts = "-ra"
