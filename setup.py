from setuptools import setup

with open("README.md", "r") as f:
    long_description = f.read()

setup(
    name="balancematch",
    use_scm_version={"fallback_version": "0.1.0"},
    setup_requires=["setuptools_scm"],
    packages=["balancematch"],
    description="Propensity score matching with balance diagnostics",
    long_description=long_description,
    long_description_content_type="text/markdown",
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "matplotlib>=3.7.1",
        "numpy>=1.26.4",
        "pandas>=2.1.4",
        "scipy>=1.13.1",
        "seaborn>=0.12.2",
        "statsmodels>=0.14.3",
        "scikit-learn>=1.5.2",
        "tqdm>=4.66.0",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
)
