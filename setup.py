from setuptools import setup, find_packages

setup(
    name="medreminder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "pydantic",
        "pydantic-settings",
        "celery",
        "redis",
        "croniter",
        "python-dateutil",
        "firebase-admin",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
