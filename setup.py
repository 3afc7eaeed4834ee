from setuptools import setup, find_packages

with open("requirements.txt") as f:
    required = f.read().splitlines()

setup(
    name="lorevault",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    package_data={"lorevault": ["data/*.yaml"]},
    python_requires=">=3.10",
    install_requires=required,
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["lorevault = lorevault.cli:main"]},
    description="Make a directory reproducible by declaring its contents in a recipe",
)
