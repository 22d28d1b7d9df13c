from setuptools import find_packages, setup

setup(
    name="forge-builder",
    version="0.1.0",
    packages=find_packages(
        include=[
            "forge_common",
            "forge_common.*",
            "forge_builder",
            "forge_builder.*",
            "forge_persistence",
            "forge_persistence.*",
            "forge_server",
            "forge_server.*",
            "forge_client",
            "forge_client.*",
            "forge_admin",
            "forge_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "forge=forge_client.cli:main",
            "forge-server=forge_server.__main__:main",
            "forge-admin=forge_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
