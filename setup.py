from setuptools import setup, find_packages

setup(
    name="pricedrift-backend",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "typing-extensions>=4.5.0",
        "numpy>=1.24.0",
        "python-dateutil>=2.8.2",
        "rapidfuzz>=3.0.0",
    ],
    extras_require={
        # boto3 is provided by the Lambda runtime
        "local": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
        ],
        "test": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
        "dev": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
            "mypy>=1.0.0",
            "types-boto3>=1.0.0",
            "types-python-dateutil>=2.8.0",
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "flake8>=6.0.0"
        ]
    }
)
