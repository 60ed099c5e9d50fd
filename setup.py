"""
Setup configuration for the backbot package.
"""
from setuptools import setup, find_packages

setup(
    name="backbot",
    version="0.1.0",
    description="Risk-gated derivatives trading bot with strategy signals and trailing stops",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Trading System Team",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*", "docs", "examples"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0,<7.0",
        "loguru>=0.7.0,<1.0",
        "pydantic>=2.0.0,<3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
        "dev": [
            "black>=23.0.0,<24.0",
            "ruff>=0.1.0,<1.0",
            "mypy>=1.0.0,<2.0",
            "isort>=5.12.0,<6.0",
            "pytest-cov>=4.0.0,<5.0",
            "pre-commit>=3.0.0,<4.0",
            "sphinx>=6.0.0,<8.0",
            "sphinx-rtd-theme>=1.2.0,<2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "backbot=backbot.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
