from setuptools import setup, find_packages

setup(
    name="timerpanel",
    version="0.2.0",
    packages=find_packages(include=["timerpanel", "timerpanel.*"]),
    include_package_data=True,
    package_data={"timerpanel": ["templates/*.html"]},
    python_requires=">=3.8",
    install_requires=[
        "fastapi",
        "jinja2",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ]
    },
    entry_points={
        "console_scripts": [
            "timerpanel=timerpanel.web.app:main"
        ]
    },
)
