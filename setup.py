from setuptools import find_packages, setup

setup(
    name='swa-github-auth',
    packages=find_packages(exclude=['tests', 'tests.*']),
    version=open('VERSION').read().strip(),
    description='GitHub repository collaborator based role assignment for Azure Static Web Apps',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    python_requires='>=3.10',
    install_requires=[
        'cachetools',
        'cryptography',
        'figcan',
        'flask',
        'flask-classful',
        'flask-marshmallow',
        'marshmallow',
        'PyJWT',
        'python-dateutil',
        'python-dotenv',
        'pyyaml',
        'requests',
        'typing-extensions',
    ],
    extras_require={
        'test': [
            'pytest',
            'responses',
        ],
    },
    include_package_data=True
)
