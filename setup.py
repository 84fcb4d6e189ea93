from setuptools import find_packages, setup

setup(
    name="git-revision-builder",
    version="0.1.0",
    license="Apache License 2.0",

    python_requires=">=3.11",
    description="Build uniquely named packages from historical revisions "
                "of git repositories.",

    packages=find_packages(exclude=("tests",)),
    package_data={"revbuild.test": ["fixtures/*/*"]},

    install_requires=[
        "Click>=8.0,<9.0",
        "toml>=0.10.0,<0.11.0",
        "pydantic>=2.0,<3.0",
        "prometheus-client>=0.17,<1.0",
        "sentry-sdk>=1.40,<3.0",
    ],

    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-mock>=3.10",
        ],
    },

    test_suite="revbuild.test",

    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
    ],
    entry_points={
        'console_scripts': [
            'git-revision-builder = revbuild.cli:main',
        ],
    },
)
