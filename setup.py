from setuptools import find_packages, setup

setup(
    name="gitgrope",
    version="0.1.0",
    description="Watch GitHub repositories for new releases, fetch their assets and run tasks",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp",
        "aiofiles",
        "PyYAML",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest<9",
            "pytest-asyncio",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "gitgrope=gitgrope.cli:main",
        ],
    },
)
