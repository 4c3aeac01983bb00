from setuptools import setup, find_packages

setup(
    name='csinstaller',
    version='0.1.0',
    description='Bootstrap installer for CommandStation-EX releases',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'urllib3',
        'rich',
        'platformdirs',
        'PyYAML',
        'pick',
    ],
    extras_require={
        'test': [
            'pytest<9',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'csinstaller=csinstaller.cli:main',
        ],
    },
)
