"""
Setup script for the review entitlements service
"""
from setuptools import setup, find_packages

setup(
    name="review_entitlements",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"review_entitlements": ["data/*.yaml"]},
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "sqlalchemy>=2.0",
        "pydantic>=2.0",
        "stripe>=8.0",
        "redis>=5.0",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "apscheduler>=3.10,<4",
        "alembic>=1.13",
        "psycopg2-binary>=2.9",
    ],
    entry_points={
        "console_scripts": [
            "review-entitlements-migrate=review_entitlements.db.migrations:main",
        ],
    },
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
)
