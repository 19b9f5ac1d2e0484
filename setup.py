#!/usr/bin/env python3

import os.path
import setuptools
from mdtree import VERSION

here = os.path.abspath(os.path.dirname(__file__))

setuptools.setup(

    name='mdtree',
    version='.'.join(map(str,VERSION)),
    description='Parses Decision Tree Markdown: nested question and answer '
                'lists, and converts them to Mermaid graphs and Ink scripts',
    long_description=open(os.path.join(here, 'README.md'), encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
    ],
    keywords='parser markdown decision tree questionnaire cross examination mermaid ink',
    packages=['mdtree'],
    install_requires=['begins'],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.6',
    test_suite='tests',
    entry_points={
        'console_scripts': [
            'mdtree = mdtree.__main__:main.start'
        ],
    },
)
