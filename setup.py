from setuptools import find_packages, setup  # type: ignore

setup(
    name="useprof",
    version="0.3.0",
    description="CPU flame graphs from OS level sampling profilers.",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.12",
    install_requires=[
        "rich",
        "rich-argparse",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "useprof=useprof.__main__:main",
        ],
    },
)
