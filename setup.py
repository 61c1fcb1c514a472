from setuptools import setup, find_packages

setup(
    name="regulatory-variance-analysis",
    version="1.0.0",
    description="Period-over-period variance analysis and validation review for regulatory returns",
    author="Your Organization",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pandas>=2.0.0",
        "numpy>=1.24.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0.0",
        "xlsxwriter>=3.1.0",
        "colorama>=0.4.6",
        "httpx>=0.25.0",
        "tqdm>=4.65.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "openpyxl>=3.1.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "regvariance=regvariance.main:main",
        ],
    },
)
