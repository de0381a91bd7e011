from setuptools import setup, find_packages

setup(
    name="lspmux",
    version="0.1.0",
    description="Language server orchestration exposed as MCP tools",
    packages=find_packages(include=["lspmux", "lspmux.*"]),
    python_requires=">=3.11",
    install_requires=[
        "click>=8.0",
        "pydantic>=2.0",
        "tomli>=2.0",
        "tomli-w>=1.0",
        "mcp>=1.2,<2",
        "uvicorn>=0.30",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "lspmux=lspmux.cli:cli",
        ],
    },
)
