from setuptools import find_packages, setup

setup(
    name="pytest-testwise",
    version="0.1.0",
    description="Report test starts and ends to a test-wise coverage agent",
    entry_points={
        "pytest11": ["testwise = pytest_testwise.plugin"],
        "console_scripts": [
            "testwise-unittest = pytest_testwise.unittest_runner:main",
        ],
    },
    packages=find_packages(
        include=["pytest_testwise*"],
        exclude=["tests*"],
    ),
    python_requires=">=3.8.1",
    install_requires=[
        "pytest>=8",
        "pydantic>=2",
        "requests",
    ],
    extras_require={
        "test": ["pytest-httpserver", "hypothesis", "pytest-xdist", "werkzeug"],
    },
)
