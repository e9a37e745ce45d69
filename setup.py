from setuptools import setup, find_packages

setup(name='gridreduce',
      version='0.1.0',
      description='Reduction of transmission networks to zonal equivalents',
      packages=find_packages(exclude=["tests", "tests.*"]),
      python_requires='>=3.8',
      include_package_data = True,
      install_requires=[
        'numpy',
        'scipy',
        'pandas',
        'openpyxl',
        'psutil',
        'progress',
        'logaugment',
        'cvxpy',
        'pyscipopt',
        ],
      extras_require={
        'tests': ['pytest'],
        },
     )
