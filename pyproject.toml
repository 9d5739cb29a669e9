[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "modlink"
version = "0.1.0"
description = "Modbus CRC16, RTU/ASCII serial framing and a server-ID bridge"
requires-python = ">=3.10"
dependencies = []
keywords = ["modbus", "rtu", "ascii", "crc16", "lrc", "bridge", "serial"]
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
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["modlink"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
