from setuptools import find_packages, setup

setup(
    name="ftp-navigator",
    version="0.1.0",
    description="Navigate and edit FTP/FTPS servers through a lazily refreshed tree cache",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "prompt_toolkit>=3.0",
    ],
    entry_points={
        "console_scripts": [
            "ftp-navigator=ftp_navigator.__main__:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "pyftpdlib",
            "build",
            "twine",
        ],
    },
)
