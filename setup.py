"""Setup script for dashcal - calendar aggregation for ambient dashboards."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements = [
    "pydantic>=2.0",
    "httpx>=0.24",
    "icalendar>=5.0",
    "python-dateutil>=2.8.2",
    "colorlog>=6.0",
]

test_requirements = [
    "pytest>=7.0",
    "pytest-asyncio>=0.21",
]

setup(
    name="dashcal",
    version="0.1.0",
    description="ICS calendar aggregation and recurrence expansion for ambient dashboards",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="dashcal developers",
    # Package configuration
    packages=find_packages(include=["dashcal", "dashcal.*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics icalendar rrule dashboard async",
    # Entry points
    entry_points={
        "console_scripts": [
            "dashcal=dashcal.__main__:main",
        ],
    },
    zip_safe=False,
)
