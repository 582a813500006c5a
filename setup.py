import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

with open('VERSION', 'r') as fh:
    VERSION = fh.read().strip()

setuptools.setup(
    name="diskbuilder",
    version=VERSION,
    description="Builds bootable BIOS/UEFI disk images from a root filesystem tarball",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=['diskbuilder', 'diskbuilder.*']),
    classifiers=[
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires='>=3.11',
    install_requires=[
        'pydantic>=2.0',
        "typing_extensions>=4.4; python_version<'3.12'",
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'diskbuilder = diskbuilder:run_as_a_module',
        ],
    },
)
