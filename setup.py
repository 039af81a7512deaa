"""Setup configuration for refmirror."""

from setuptools import setup, find_packages

setup(
    name='refmirror',
    version='1.0.0',
    description='Personal bibliography with BibTeX interchange and encrypted pub/sub mirroring',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.11',
    install_requires=[
        'python-dotenv>=1.0.0',
        'PyYAML>=6.0',
        'click>=8.1.7',
        'cryptography>=41.0.7',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': ['refmirror=refmirror.cli:cli'],
    },
)
