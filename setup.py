from setuptools import setup

version = '0.1'

with open("README.md", "r", encoding="utf-8") as f:
    long_descr = f.read()

setup(
    name='pyhegel',
    packages=['pyhegel'],
    version=version,
    license='Apache 2.0',
    description='Control Hegel amplifiers over the network',
    long_description=long_descr,
    long_description_content_type='text/markdown',
    author='pyhegel contributors',
    url='https://github.com/pyhegel/pyhegel',
    keywords=['Hegel', 'Amplifier', 'IP control'],
    python_requires='>=3.10',
    install_requires=[
        "voluptuous>=0.13.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Topic :: Home Automation',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
    ],
)
