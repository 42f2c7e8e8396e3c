[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "volokit"
version = "0.1.0"
description = "IDL configuration management, gRPC message framing and client middleware for RPC projects"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["rpc", "grpc", "thrift", "protobuf", "idl", "configuration"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
volo = "volokit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["volokit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
