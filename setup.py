"""Setup script for the Steward package."""

from setuptools import setup, find_packages

setup(
    name="steward",
    version="0.1.0",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.11",
    install_requires=[
        "structlog>=24.1",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "httpx>=0.27",
        "prometheus-client>=0.20",
        "langchain-core>=0.3",
        "langchain-ollama>=0.2",
        "openai>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    description="Steward - tool-orchestrating personal assistant core",
    author="Steward Team",
)
