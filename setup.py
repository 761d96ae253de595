from setuptools import setup, find_namespace_packages

setup(
    name="asqli",
    version="1.0.0",
    description="asqli - AI-assisted SQL terminal client for PostgreSQL, MySQL and SQLite",
    packages=find_namespace_packages(include=["core", "ui", "utils"]),
    py_modules=["main", "config"],
    package_data={"ui": ["*.tcss"]},
    python_requires=">=3.10",
    install_requires=[
        "textual>=0.86.0",
        "rich>=13.7.0",
        "mysql-connector-python>=8.3.0",
        "psycopg2-binary>=2.9.9",
        "ollama>=0.4.0",
        "langchain-core>=0.2.0",
        "httpx>=0.27.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "loguru>=0.7.2",
        "click>=8.1.7",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "asqli=main:cli",
        ],
    },
)
