import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pynlsolve",
    version="0.1.0",
    author="pynlsolve developers",
    description="Nonlinear equation and least squares solvers built on "
                "NumPy and SciPy.",
    include_package_data=True,
    install_requires=[
        'numpy', 'scipy>=1.12'
    ],
    extras_require={
        'test': ['pytest'],
        'doc': ['sphinx', 'pydata-sphinx-theme'],
    },
    keywords='nonlinear equations newton trust region levenberg-marquardt',
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=['pynlsolve', 'pynlsolve.*']),
    python_requires='>=3.10',
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Natural Language :: English",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Mathematics"
    ]
)
