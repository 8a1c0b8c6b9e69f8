[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fplusdb"
version = "2.2.12"
description = "Database access layer, cron scheduling and verifier authorisation for allocator and application records"
requires-python = ">=3.10"
keywords = ["database", "sqlalchemy", "allocators", "applications", "cron", "verifier"]
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
    "Topic :: Database :: Front-Ends",
]
dependencies = [
    "sqlalchemy>=2.0",
    "python-dotenv>=1.0",
    "pycryptodome>=3.18",
    "requests>=2.31",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "responses>=0.24",
]

[tool.hatch.build.targets.wheel]
packages = ["fplusdb"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
