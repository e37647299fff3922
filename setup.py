from setuptools import setup, find_namespace_packages

setup(
    name="flood_response_backend",
    version="0.1",
    packages=find_namespace_packages(include=["services", "utils"]),
    py_modules=["main", "models"],
    install_requires=[
        "fastapi>=0.111.0",
        "uvicorn[standard]>=0.30.0",
        "pydantic>=2.7.0",
        "pandas>=2.2.0",
        "numpy>=1.26.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "httpx>=0.27.0",
        ],
    },
)
