from setuptools import setup, find_packages
import os

# Read the README file for long description
readme_path = os.path.join(os.path.dirname(__file__), "README.md")
try:
    with open(readme_path, "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "OmniFocus Report - compact folder/project/task reports from the OmniJS export plugin"

# Read requirements from requirements.txt
requirements_path = os.path.join(os.path.dirname(__file__), "requirements.txt")
try:
    with open(requirements_path, "r", encoding="utf-8") as f:
        requirements = []
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                # Remove inline comments
                req = line.split("#")[0].strip()
                if req:
                    requirements.append(req)
except FileNotFoundError:
    requirements = [
        "typer>=0.9.0",
        "rich>=13.5.2",
        "python-dotenv>=1.0.0",
        "python-dateutil>=2.8.2",
        "pydantic>=2.0.0",
    ]

setup(
    name="ofreport",
    version="1.0.0",
    author="OmniFocus CLI Team",
    author_email="contact@omnifocus-cli.com",
    description="OmniFocus Report - normalize OmniJS exports and render compact folder/project/task reports",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/jmg421/omni-cli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Office/Business :: Scheduling",
        "Topic :: Utilities",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Environment :: Console",
        "Natural Language :: English",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.1.3",
            "pytest-mock>=3.10.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ofreport=ofreport.cli:app",
        ],
    },
    keywords="omnifocus productivity task-management cli apple macos report",
    project_urls={
        "Bug Reports": "https://github.com/jmg421/omni-cli/issues",
        "Source": "https://github.com/jmg421/omni-cli",
    },
    zip_safe=False,
)
