"""
Concrete UQ: Learned Dropout Rates and Uncertainty Decomposition
Heteroscedastic regression with Concrete Dropout and Monte Carlo sampling
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="concrete-uq",
    version="1.0.0",
    author="N/A",
    author_email="N/A@university.edu",
    description="Concrete Dropout with epistemic/aleatoric uncertainty decomposition for regression",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.1.0",
            "black>=22.6.0",
            "flake8>=5.0.0",
        ],
    },
)
