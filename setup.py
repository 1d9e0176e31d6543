from setuptools import setup, find_packages


setup(name='consmaplib',
      version='0.1.0',
      description='Conservative mesh-to-mesh field mapping on polyhedral meshes',
      license='MIT',
      packages=find_packages(include=['consmaplib', 'consmaplib.*']),
      install_requires=[
          'scipy',
          'numpy',
           ],
      extras_require={
          'vtk': ['meshio'],
          'test': ['pytest'],
      },
      long_description='None',
      long_description_content_type='text/markdown',
      keywords='remapping finite-volume conservative-interpolation',
      classifiers=[
          'Development Status :: 3 - Alpha',

          'Intended Audience :: Science/Research',
          'Intended Audience :: Developers',
          'Topic :: Scientific/Engineering',
          'Topic :: Scientific/Engineering :: Mathematics',

          'License :: OSI Approved :: MIT License',

          'Programming Language :: Python :: 3.9',
      ],
      zip_safe=False)
