from setuptools import setup, find_packages

setup(
    name="hybrid-rr-scheduler",
    version="1.0.0",
    description="Hybrid round-robin scheduling of independent tasks on heterogeneous workers",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        # Core dependencies
        "pydantic>=2.0",
        "numpy",
        "pandas",
        "joblib>=1.3.2",
    ],
    extras_require={
        "test": ["pytest>=7.0.0", "pytest-timeout>=2.1.0"],
        "all": [
            "pytest>=7.0.0",
            "pytest-timeout>=2.1.0"
        ],
    },
    entry_points={
        "console_scripts": ["hybridrr-experiment=hybridrr.experiment:main"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
        "Topic :: System :: Distributed Computing",
    ],
)
