from setuptools import setup, find_packages

setup(
    name="dicomsynth",
    version="1.0.0",
    description="Synthetic DICOM study generator with a byte-exact explicit VR little endian encoder",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pydicom>=2.4.0",
        "numpy>=1.24.0",
        "Pillow>=10.0.0",
        "python-dateutil>=2.8.0",
        "fpdf2>=2.7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dicomsynth=dicomsynth.cli:main",
        ],
    },
)
