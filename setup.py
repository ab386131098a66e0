from setuptools import setup, find_packages

setup(
    name='kubelaunch',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'pydantic>=2',
        'pyyaml',
        'python-dotenv',
        'paramiko',
        'requests',
        'tenacity',
        'packaging',
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
        ],
    },
    entry_points={
        'console_scripts': [
            'kubelaunch=kubelaunch.cli:app'
        ]
    },
    author='Your Name',
    description='Bring up a single-node Kubernetes cluster on a local VM, a remote machine or this host',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX',
    ],
    python_requires='>=3.8',
)
