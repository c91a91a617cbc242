from setuptools import setup, find_packages

setup(
    name="tiled-winograd",
    version="1.0.0",
    description="Tiled Winograd F(2,3) — four-stage 3x3 convolution pipeline for GPUs (torch / OpenCL)",
    packages=find_packages(include=["tiled_winograd", "tiled_winograd.*"]),
    package_data={"tiled_winograd": ["kernels/*.cl"]},
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.0",
        "numpy",
    ],
    extras_require={
        "opencl": ["pyopencl"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["tiled-winograd=tiled_winograd.cli:main"],
    },
)
