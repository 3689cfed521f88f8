[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xrayexport"
version = "0.1.0"
description = "Convert trace spans into AWS X-Ray segment documents and hand them to a PutTraceSegments client."
requires-python = ">=3.10"
dependencies = []
keywords = ["tracing", "xray", "aws", "telemetry", "spans", "segments"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["xrayexport"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
