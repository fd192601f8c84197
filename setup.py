#!/usr/bin/env python
# Copyright (C) 2003-2020  CAMP
# Please see the accompanying LICENSE file for further information.

import re
import sys
from pathlib import Path

from setuptools import find_packages, setup

assert sys.version_info >= (3, 7)

# Get the current version number:
txt = Path('pwresponse/__init__.py').read_text()
version = re.search("__version__ = '(.*)'", txt)[1]
ase_version_required = re.search("__ase_version_required__ = '(.*)'", txt)[1]

description = 'Linear density response of plane-wave Kohn-Sham ground states'
long_description = Path('README.rst').read_text()


setup(name='pwresponse',
      version=version,
      description=description,
      long_description=long_description,
      license='GPLv3+',
      platforms=['unix'],
      packages=find_packages(include=['pwresponse', 'pwresponse.*']),
      install_requires=[f'ase>={ase_version_required}',
                        'numpy',
                        'scipy>=1.5.0'],
      extras_require={'mpi': ['mpi4py'],
                      'test': ['pytest'],
                      'devel': ['flake8',
                                'mypy',
                                'pytest-xdist']},
      classifiers=[
          'Development Status :: 3 - Alpha',
          'License :: OSI Approved :: '
          'GNU General Public License v3 or later (GPLv3+)',
          'Operating System :: OS Independent',
          'Programming Language :: Python :: 3',
          'Topic :: Scientific/Engineering :: Physics'])
