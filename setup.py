from setuptools import setup, find_packages


setup(
    name="tarsplit",
    version="0.1",
    packages=find_packages(include=["tarsplit", "tarsplit.*"]),
    description="Split a tar archive or a directory into independent, size-bounded tar archives.",
    author="vercingetorx",
    python_requires=">=3.9",
    install_requires=[
        "zstandard>=0.22.0",
    ],
    entry_points={
        "console_scripts": [
            "tarsplit=tarsplit.cli:main",
        ]
    },
)
