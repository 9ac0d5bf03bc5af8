"""Setup script for parzip"""
from setuptools import setup
from pathlib import Path
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""
setup(
    name="parzip",
    version="1.0.0",
    author="parzip Project",
    author_email="info@parzip.dev",
    description="Parallel ZIP packer and unpacker with reproducible, ordered output",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/parzip",
    project_urls={
        "Bug Reports": "https://github.com/yourusername/parzip/issues",
        "Source": "https://github.com/yourusername/parzip",
    },
    py_modules=["parzip"],
    python_requires=">=3.9",
    install_requires=["pathspec>=0.11.0"],
    extras_require={
        "progress": ["rich>=12.0.0", "tqdm>=4.60.0"],
        "dev": ["pytest>=6.0.0", "black>=22.0.0", "flake8>=4.0.0", "pytest-asyncio"],
        "full": ["rich>=12.0.0", "tqdm>=4.60.0"],
    },
    entry_points={
        "console_scripts": [
            "parzip=parzip:cli_main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Archiving :: Compression",
        "Topic :: System :: Archiving",
    ],
)
