[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ghstats"
version = "0.7.1"
description = "Collect GitHub repository traffic, stars and popularity statistics into SQLite and render them as HTML and JSON."
requires-python = ">=3.10"
keywords = ["github", "statistics", "traffic", "dashboard", "sqlite", "analytics"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Topic :: Software Development :: Version Control :: Git",
]
dependencies = [
    "httpx>=0.27",
    "aiosqlite>=0.20",
    "starlette>=0.37",
    "markupsafe>=2.1",
]

[project.optional-dependencies]
test = [
    "pytest>=8.0",
    "pytest-asyncio>=0.23",
    "respx>=0.21",
]

[tool.hatch.build.targets.wheel]
packages = ["ghstats"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
