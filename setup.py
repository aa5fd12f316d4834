"""Setup configuration for the k3d sandbox manager."""

from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="k3d-sandbox-manager",
    version="1.0.0",
    description="HTTP service that hands out short-lived k3d Kubernetes sandboxes",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="WeCode-AI Team",
    author_email="team@wecode.ai",
    packages=find_packages(
        include=["sandbox_manager", "sandbox_manager.*", "shared", "shared.*"],
        exclude=["*.tests", "*.tests.*"],
    ),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "pydantic>=2.0.0",
        "APScheduler>=3.10.0,<4.0.0",
        "redis>=4.5.0",
        "PyJWT>=2.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-mock>=3.10.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "k3d-sandbox-manager=sandbox_manager.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Systems Administration",
    ],
    keywords="k3d kubernetes sandbox kubectl",
)
