import re
import os
from typing import Optional
import pytest


def pytest_addoption(parser: pytest.Parser):
    group = parser.getgroup("pipeblocks")
    group.addoption("--pipeblocks-traces", action="store_true", help="Generate traces from tests")
    group.addoption("--pipeblocks-list", action="store_true", help="List all tests in flatten format.")
    group.addoption(
        "--pipeblocks-test-name",
        action="store",
        type=str,
        help="Name or regexp in flatten format matching the tests to run.",
    )
    group.addoption("--pipeblocks-log-filter", default=".*", action="store", help="Regexp used to filter out logs.")


def generate_unittestname(item: pytest.Item) -> str:
    full_name = ".".join(map(lambda s: s[:-3] if s[-3:] == ".py" else s, map(lambda x: x.name, item.listchain())))
    return full_name


def pytest_collection_finish(session: pytest.Session):
    if session.config.getoption("pipeblocks_list"):
        for item in session.items:
            print(generate_unittestname(item))


@pytest.hookimpl(tryfirst=True)
def pytest_runtestloop(session: pytest.Session) -> Optional[bool]:
    if session.config.getoption("pipeblocks_list"):
        return True
    return None


def pytest_collection_modifyitems(items: list[pytest.Item], config: pytest.Config) -> None:
    test_name = config.getoption("pipeblocks_test_name")
    if not isinstance(test_name, str):
        return

    deselected = []
    remaining = []
    regexp = re.compile(test_name)
    for item in items:
        if regexp.search(generate_unittestname(item)) is None:
            deselected.append(item)
        else:
            remaining.append(item)
    if deselected:
        config.hook.pytest_deselected(items=deselected)
        items[:] = remaining


def pytest_runtest_setup(item: pytest.Item):
    """
    This function is called to perform the setup phase for every test, so
    it is a perfect moment to set environment variables.
    """
    if item.config.getoption("--pipeblocks-traces", False):  # type: ignore
        os.environ["__TRANSACTRON_DUMP_TRACES"] = "1"

    os.environ["__TRANSACTRON_LOG_FILTER"] = item.config.getoption("--pipeblocks-log-filter", ".*")  # type: ignore
    os.environ["__TRANSACTRON_LOG_LEVEL"] = item.config.getoption("--log-level") or "WARNING"  # type: ignore
