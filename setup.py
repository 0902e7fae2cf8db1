import os.path
from setuptools import setup, find_packages

readme_path = os.path.join(os.path.abspath(os.path.dirname(__file__)), 'README.md')
with open(readme_path) as f:
    long_desc = f.read()

setup(
    name='workload-dns',
    description='Cloudformation custom resources for workload certificates and DNS records',
    version='1.0.0',
    license='MIT',
    keywords='cloudformation troposphere certificate route53',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    long_description=long_desc,
    long_description_content_type='text/markdown',
    python_requires='>=3.9',
    install_requires=['troposphere', 'awacs', 'wrapt', 'boto3', 'botocore'],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=False
)
