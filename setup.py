from setuptools import setup, find_packages

setup(
    name="snn_cluster",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "scipy",
        "scikit-learn",
        "pandas",
        "numba",
        "click",
        "tqdm",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "snn-cluster=snn_cluster.cli:main",
        ],
    },
    description="Shared-nearest-neighbor graph construction and modularity clustering",
    python_requires=">=3.8",
)
