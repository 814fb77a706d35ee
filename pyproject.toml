[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ldapkit"
version = "0.1.0"
description = "LDAP message building blocks: BER packets, search filters, requests, results and errors"
requires-python = ">=3.10"
dependencies = []
keywords = ["ldap", "ber", "asn1", "directory", "filter", "rfc4511", "rfc4515"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration :: Authentication/Directory :: LDAP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ldapkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
