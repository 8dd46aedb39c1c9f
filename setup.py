from setuptools import setup, find_packages


def readme():
    with open('README.md') as f:
        return f.read()


setup(
    name='treeclust',
    version='0.0',
    description='Edge-corrected K-functions for juvenile tree clustering in '
                'census plots',
    long_description=readme(),
    long_description_content_type='text/markdown',
    author='Daniel Wennberg',
    author_email='daniel.wennberg@gmail.com',
    license='Apache 2.0',
    packages=find_packages(exclude=['tests']),
    package_data={'treeclust': ['data/*.csv']},
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'scipy',
        'pandas',
        'matplotlib',
        'shapely>=2.0',
    ],
    extras_require={
        'test': ['pytest'],
    },
)
