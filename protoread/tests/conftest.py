"""Shared fixtures for the protoread tests."""

import os

import pytest

from protoread.schema import parse

DATA_DIR = os.path.join(os.path.dirname(os.path.realpath(__file__)), "data")


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def person():
    """The Person message of data/person.proto."""
    with open(os.path.join(DATA_DIR, "person.proto"), encoding="utf-8") as f:
        return parse(f.read()).message("Person")
