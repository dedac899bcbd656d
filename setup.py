from setuptools import setup, find_packages
import version

setup(
    name="bled112-central",
    packages=find_packages(exclude=("test", "test.*")),
    version=version.version,
    license="LGPLv3",
    install_requires=[
        "pyserial>=3.4.0,<4",
        "typedargs>=1.0.0,<2",
        "sortedcontainers~=2.1",
        "typing_extensions>=3.7"
    ],
    extras_require={
        'test': ["pytest>=5"]
    },
    python_requires=">=3.6,<4",
    description="BLE central driver for the BLED112 USB adapter",
    author="Arch",
    author_email="info@arch-iot.com",
    url="http://github.com/iotile/coretools",
    keywords=["bled112", "bgapi", "bluetooth", "ble", "gatt", "hardware"],
    classifiers=[
        "Programming Language :: Python",
        "Development Status :: 4 - Beta",
        "License :: OSI Approved :: GNU Library or Lesser General Public License (LGPL)",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.6",
        "Programming Language :: Python :: 3.7",
        "Topic :: Software Development :: Libraries :: Python Modules"
        ],
    long_description="""\
BLED112 Central
---------------

A python driver that talks BGAPI to a Silicon Labs BLED112 dongle and exposes
scanning, connection management and GATT client operations.
"""
)
