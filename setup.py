from setuptools import setup

setup(
    name="hiobench",
    version="0.0.1",
    description="Binary-code cascade training and nprobe sweeps for SISAP23 LAION ANN benchmarks",
    package_dir={"hiobench": "src/python"},
    packages=["hiobench", "hiobench.datasets", "hiobench.encoders"],
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "torch",
        "faiss-cpu",
        "h5py",
        "pandas",
        "pyyaml",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["hiobench=hiobench.cli:main"]},
    zip_safe=False,
)
