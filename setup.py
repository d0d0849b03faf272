"""
wsstatics setup script.
"""

import os

from setuptools import setup


## Function we need


def get_version_and_doc(filename):
    NS = dict(__version__="", __doc__="")
    docStatus = 0  # Not started, in progress, done
    for line in open(filename, "rb").read().decode().splitlines():
        if line.startswith("__version__"):
            exec(line.strip(), NS, NS)
        elif line.startswith('"""'):
            if docStatus == 0:
                docStatus = 1
                line = line.lstrip('"')
            elif docStatus == 1:
                docStatus = 2
        if docStatus == 1:
            NS["__doc__"] += line.rstrip() + "\n"
    if not NS["__version__"]:
        raise RuntimeError("Could not find __version__")
    return NS["__version__"], NS["__doc__"]


## Collect info for setup()

THIS_DIR = os.path.dirname(__file__)

# Define name and description
name = "wsstatics"
description = "Embedded static assets, served next to websockets on one port"

# Get version and docstring (i.e. long description)
version, doc = get_version_and_doc(os.path.join(THIS_DIR, "wsstatics", "__init__.py"))


## Setup

setup(
    name=name,
    version=version,
    license="(new) BSD",
    keywords="static assets websocket embedded server",
    description=description,
    long_description=doc,
    platforms="any",
    provides=[name],
    python_requires=">=3.8",
    install_requires=["websockets>=13"],
    extras_require={
        "test": ["pytest", "pytest-cov", "requests"],
        "dev": ["invoke", "black", "flake8"],
    },
    packages=["wsstatics"],
    entry_points={"console_scripts": ["wsstatics = wsstatics.__main__:cli"]},
    zip_safe=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP",
        "License :: OSI Approved :: BSD License",
        "Operating System :: MacOS :: MacOS X",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
    ],
)
