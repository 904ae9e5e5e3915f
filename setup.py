"""Setup configuration for the Chat Exchange room session library."""

from setuptools import setup, find_packages

setup(
    name="chatexchange-session",
    version="0.1.0",
    description="Long-lived client sessions for Stack Exchange chat rooms",
    author="Chat Exchange Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "aiohttp>=3.9.0",
        "websockets>=12.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "chatexchange-watch=chatexchange.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
