from setuptools import setup, find_packages

setup(
    name="medibot-reminders",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "python-dotenv",
        "pydantic",
        "pydantic-settings>=2.7",
        "firebase-admin",
        "google-cloud-firestore",
        "requests",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "medibot-reminders=medibot.main:run",
        ],
    },
)
