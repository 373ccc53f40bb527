from setuptools import setup, find_packages


setup(
    name="ipti",
    version="0.1",
    packages=find_packages(include=["ipti", "ipti.*"]),
    description="Move CSV data into and out of IPLD Prolly Tree Indexer databases stored as CAR archives.",
    python_requires=">=3.9",
    install_requires=[
        "dag-cbor>=0.3.3",
        "multiformats>=0.3.1",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ipti=ipti.cli:main",
        ]
    },
)
