from setuptools import setup, find_packages

with open('long_description.rst') as f:
  ld = f.read()

__version__ = eval(open('kinsim/version.py').read().split('=')[1])
setup(
  name='kinsim',
  version=__version__,
  description='Simulator for variants in families',
  long_description=ld,
  keywords=['simulator', 'genomics', 'pedigree', 'vcf', 'variant caller'],
  classifiers=[
    'Development Status :: 4 - Beta',
    'Intended Audience :: Science/Research',
    'Topic :: Scientific/Engineering :: Bio-Informatics',
    'Programming Language :: Python :: 3',
  ],
  python_requires='>=3.4',
  packages=find_packages(include=['kinsim*']),
  package_data={'kinsim': ['data/*.txt', 'test/data/*.txt']},
  entry_points={'console_scripts': ['kinsim = kinsim.cli:cli']},
  install_requires=[
    'setuptools>=24.3.0',
    'numpy>=1.11.0',
    'click>=3.3',
    'pysam',
  ],
  extras_require={'test': ['pytest']},
)
