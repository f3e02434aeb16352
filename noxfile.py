from __future__ import annotations

import os
import shutil

import nox

nox.options.error_on_missing_interpreters = True


def tests_impl(
    session: nox.Session,
    extras: str = "test,brotli",
    integration: bool = False,
) -> None:
    # Install deps and the package itself.
    session.install(f".[{extras}]")
    # Print the Python version and bytesize.
    session.run("python", "--version")
    session.run("python", "-c", "import struct; print(struct.calcsize('P') * 8)")

    session.run(
        "python",
        "-m",
        "pytest",
        "-v",
        "-ra",
        *(("-m", "integration") if integration else ()),
        "--tb=native",
        "--durations=10",
        "--strict-config",
        "--strict-markers",
        *(session.posargs or ("test/",)),
        env={"PYTHONWARNINGS": "always::DeprecationWarning"},
    )


@nox.session(python=["3.9", "3.10", "3.11", "3.12", "3.13", "pypy3.10"])
def test(session: nox.Session) -> None:
    tests_impl(session)


@nox.session(python="3")
def test_integration(session: nox.Session) -> None:
    """Run integration tests"""
    tests_impl(session, integration=True)


@nox.session(python="3")
def test_no_brotli(session: nox.Session) -> None:
    """Check that gzip and deflate decoding work without the brotli extra."""
    tests_impl(session, extras="test")


@nox.session()
def format(session: nox.Session) -> None:
    """Run code formatters."""
    lint(session)


@nox.session(python="3.12")
def lint(session: nox.Session) -> None:
    session.install("pre-commit")
    session.run("pre-commit", "run", "--all-files")

    mypy(session)


@nox.session(python="3.12")
def mypy(session: nox.Session) -> None:
    """Run mypy."""
    session.install(".[test]", "mypy", "typing_extensions")
    session.run("mypy", "--version")
    session.run("mypy", "-p", "httpsingle")


@nox.session
def clean(session: nox.Session) -> None:
    """Remove build and test artifacts."""
    for path in ("build", "dist", ".pytest_cache", ".mypy_cache"):
        if os.path.isdir(path):
            shutil.rmtree(path)
