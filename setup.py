from setuptools import setup, find_packages


setup(
    name="satchel",
    version="0.1",
    packages=find_packages(include=["satchel", "satchel.*"]),
    description="Portable single-file backup archives: bzip2-compressed, optionally AES-encrypted bundles of application assets.",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "satchel=satchel.cli:main",
        ]
    },
)
