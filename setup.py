# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""myftpd installer.

$ python setup.py install
"""

import ast
import os

WINDOWS = os.name == "nt"

# Test deps, installable via `pip install .[test]`.
TEST_DEPS = [
    "psutil",
    "pytest",
    "pytest-instafail",
    "pytest-xdist",
    "setuptools",
]

# Development deps, installable via `pip install .[dev]`.
DEV_DEPS = [
    "black",
    "check-manifest",
    "coverage",
    "pylint",
    "pytest-cov",
    "pytest-xdist",
    "rstcheck",
    "ruff",
    "toml-sort",
    "twine",
]
if WINDOWS:
    DEV_DEPS.extend(["pyreadline3", "pdbpp"])


def get_version():
    INIT = os.path.abspath(
        os.path.join(os.path.dirname(__file__), "myftpd", "__init__.py")
    )
    with open(INIT) as f:
        for line in f:
            if line.startswith("__ver__"):
                ret = ast.literal_eval(line.strip().split(" = ")[1])
                assert ret.count(".") == 2, ret
                for num in ret.split("."):
                    assert num.isdigit(), ret
                return ret
        raise ValueError("couldn't find version string")


with open("README.rst") as f:
    long_description = f.read()


def main():
    from setuptools import setup  # noqa: PLC0415

    setup(
        name="myftpd",
        version=get_version(),
        description="Minimal FTP server serving a single directory tree",
        long_description=long_description,
        long_description_content_type="text/x-rst",
        license="MIT",
        platforms="Platform Independent",
        author="Giampaolo Rodola'",
        author_email="g.rodola@gmail.com",
        url="https://github.com/giampaolo/pyftpdlib/",
        packages=["myftpd", "myftpd.test"],
        # fmt: off
        keywords=["ftp", "server", "ftpd", "daemon", "python", "sendfile",
                  "rfc959", "rfc2428", "rfc3659"],
        # fmt: on
        install_requires=[
            "pyasyncore;python_version>='3.12'",
        ],
        extras_require={
            "dev": DEV_DEPS,
            "test": TEST_DEPS,
        },
        entry_points={
            "console_scripts": [
                "myftpd = myftpd.__main__:main",
                "myftp = myftpd.client:main",
            ],
        },
        python_requires=">=3.10",
        zip_safe=False,
        classifiers=[
            "Development Status :: 4 - Beta",
            "Environment :: Console",
            "Intended Audience :: Developers",
            "Intended Audience :: System Administrators",
            "Operating System :: OS Independent",
            "Programming Language :: Python",
            "Topic :: Internet :: File Transfer Protocol (FTP)",
            "Topic :: Software Development :: Libraries :: Python Modules",
            "Topic :: System :: Filesystems",
            "Programming Language :: Python :: 3",
        ],
    )


if __name__ == "__main__":
    main()
