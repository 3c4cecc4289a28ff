"""Installation script for delayalloc package."""

from setuptools import find_packages, setup

version = "0.0.1"

classifiers = [
    "Development Status :: 1 - Planning",
    "License :: OSI Approved :: Apache Software License",
    "Natural Language :: English",
    "Operating System :: OS Independent",
    "Programming Language :: Python",
    "Programming Language :: Python :: 3.11",
]

with open("README.md") as f:
    long_description = f.read()

with open("requirements.txt") as f:
    requirements = f.readlines()
install_requires = [r.strip() for r in requirements if r.strip()]

with open("dev-requirements.txt") as f:
    dev_requirements = f.readlines()
install_requires_dev = [r.strip() for r in dev_requirements if r.strip()]

setup(
    name="delayalloc",
    version=version,
    description="Allocation of build vs. no-build network delay change to projects",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache 2",
    platforms="any",
    classifiers=classifiers,
    packages=find_packages(include=["delayalloc", "delayalloc.*"]),
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        "dev": install_requires_dev,
    },
    scripts=["bin/delayalloc"],
)
