from setuptools import setup, find_namespace_packages

setup(
    name="database-sync",
    version="0.1",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["main"],
    python_requires=">=3.9",
    install_requires=[
        "loguru",
        "sqlalchemy>=2.0",
        "pymysql",
        "psycopg2-binary",
        "pyodbc",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
