# setup.py - Package build
from setuptools import setup

setup(
    name="fractal_resonance",
    version="0.1.0",
    packages=["fractal_resonance"],
    package_data={"fractal_resonance": ["data/*.yaml"]},
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
