"""Setup script for the ERP desk client."""
from setuptools import setup, find_namespace_packages

setup(
    name="erp-desk",
    version="1.0.0",
    description="Invoicing, payment reconciliation and reporting client for a remote document store",
    author="Your Name",
    packages=find_namespace_packages(include=["erp_desk", "erp_desk.*"]),
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.31.0",
        "pandas>=2.0.0",
        "python-dateutil>=2.8.2",
        "openpyxl>=3.1.0",
        "jinja2>=3.1.0",
        "click>=8.1.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
        "uvicorn>=0.23.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "erp=erp_desk.cli:main",
        ],
    },
)
