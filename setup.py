"""Setup configuration for the Anoncord relay bot."""

from setuptools import setup, find_packages

setup(
    name="anoncord",
    version="0.1.0",
    description="An anonymous Discord relay with moderator approval",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0,<9",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "anoncord=anoncord.main:main",
        ],
    },
)
