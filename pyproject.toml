[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tosaplan"
version = "0.1.0"
description = "Liveness analysis and static memory planning for TOSA tensor programs"
requires-python = ">=3.10"
dependencies = []
keywords = ["tosa", "mlir", "liveness", "memory planning", "tensor", "compiler"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tosaplan = "tosaplan.analyzer:main"

[tool.hatch.build.targets.wheel]
packages = ["tosaplan"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
